"""Static chain and token metadata for consolidation runs."""

from typing import Any, Dict

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    10: {
        'name': 'OP Mainnet',
        'rpc_url': 'https://mainnet.optimism.io',
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    8453: {
        'name': 'Base',
        'rpc_url': 'https://mainnet.base.org',
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    137: {
        'name': 'Polygon',
        'rpc_url': 'https://polygon-rpc.com',
        'native_symbol': 'POL',
        'native_decimals': 18,
    },
    42161: {
        'name': 'Arbitrum One',
        'rpc_url': 'https://arb1.arbitrum.io/rpc',
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    534352: {
        'name': 'Scroll',
        'rpc_url': 'https://rpc.scroll.io',
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
}

CHAIN_ALIASES: Dict[str, int] = {
    'optimism': 10,
    'op': 10,
    'base': 8453,
    'polygon': 137,
    'matic': 137,
    'arbitrum': 42161,
    'arb': 42161,
    'scroll': 534352,
}

# Token symbol -> chain id -> contract address.
# Symbol order is the default ordering of tokens within a chain group.
TOKEN_DEPLOYMENTS: Dict[str, Dict[int, str]] = {
    'USDC': {
        10: '0x0b2c639c533813f4aa9d7837caf62653d097ff85',
        8453: '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913',
        42161: '0xaf88d065e77c8cC2239327C5EDb3A432268e5831',
        137: '0x3c499c542cef5e3811e1192ce70d8cc03d5c3359',
        534352: '0x06eFdBFf2a14a7c8E15944D1F4A48F9F95F663A4',
    },
    'DAI': {
        10: '0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1',
        8453: '0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb',
        42161: '0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1',
        137: '0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063',
    },
}
