"""Chain metadata and well-known addresses for supported EVM networks."""

from typing import Any, Dict, List, Optional

NATIVE_PLACEHOLDER = '0x0000000000000000000000000000000000000000'
MULTICALL3_ADDRESS = '0xcA11bde05977b3631167028862bE2a173976CA11'

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    1: {
        'name': 'Ethereum',
        'native_symbol': 'ETH',
        'public_rpcs': ['https://rpc.ankr.com/eth', 'https://eth.llamarpc.com'],
        'alchemy_slug': 'eth-mainnet',
    },
    8453: {
        'name': 'Base',
        'native_symbol': 'ETH',
        'public_rpcs': ['https://mainnet.base.org', 'https://base.llamarpc.com'],
        'alchemy_slug': 'base-mainnet',
    },
    42161: {
        'name': 'Arbitrum',
        'native_symbol': 'ETH',
        'public_rpcs': ['https://arb1.arbitrum.io/rpc', 'https://arbitrum.llamarpc.com'],
        'alchemy_slug': 'arb-mainnet',
    },
}

# Output tokens offered per destination chain.
COMMON_TOKENS: Dict[int, List[Dict[str, Any]]] = {
    1: [
        {'address': NATIVE_PLACEHOLDER, 'symbol': 'ETH', 'name': 'Ethereum', 'decimals': 18},
        {'address': '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48', 'symbol': 'USDC', 'name': 'USD Coin', 'decimals': 6},
        {'address': '0xdAC17F958D2ee523a2206206994597C13D831ec7', 'symbol': 'USDT', 'name': 'Tether USD', 'decimals': 6},
        {'address': '0x6B175474E89094C44Da98b954EedeAC495271d0F', 'symbol': 'DAI', 'name': 'Dai Stablecoin', 'decimals': 18},
        {'address': '0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599', 'symbol': 'WBTC', 'name': 'Wrapped Bitcoin', 'decimals': 8},
    ],
    8453: [
        {'address': NATIVE_PLACEHOLDER, 'symbol': 'ETH', 'name': 'Ethereum', 'decimals': 18},
        {'address': '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913', 'symbol': 'USDC', 'name': 'USD Coin', 'decimals': 6},
        {'address': '0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb', 'symbol': 'DAI', 'name': 'Dai Stablecoin', 'decimals': 18},
        {'address': '0xcbB7C0000aB88B473b1f5aFd9ef808440eed33Bf', 'symbol': 'cbBTC', 'name': 'Coinbase BTC', 'decimals': 8},
    ],
    42161: [
        {'address': NATIVE_PLACEHOLDER, 'symbol': 'ETH', 'name': 'Ethereum', 'decimals': 18},
        {'address': '0xaf88d065e77c8cC2239327C5EDb3A432268e5831', 'symbol': 'USDC', 'name': 'USD Coin', 'decimals': 6},
        {'address': '0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9', 'symbol': 'USDT', 'name': 'Tether USD', 'decimals': 6},
        {'address': '0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1', 'symbol': 'DAI', 'name': 'Dai Stablecoin', 'decimals': 18},
        {'address': '0x2f2a2543B76A4166549F7aaB2e75Bef0aefC5B0f', 'symbol': 'WBTC', 'name': 'Wrapped Bitcoin', 'decimals': 8},
    ],
}


def is_supported_chain(chain_id: int) -> bool:
    return chain_id in CHAIN_METADATA


def chain_name(chain_id: int) -> str:
    meta = CHAIN_METADATA.get(int(chain_id))
    return meta['name'] if meta else f'Chain {chain_id}'


def rpc_url_for(chain_id: int, alchemy_api_key: str = '') -> Optional[str]:
    """Return the RPC endpoint for ``chain_id``; Alchemy wins when a key is set."""

    meta = CHAIN_METADATA.get(int(chain_id))
    if not meta:
        return None
    if alchemy_api_key and meta.get('alchemy_slug'):
        return f"https://{meta['alchemy_slug']}.g.alchemy.com/v2/{alchemy_api_key}"
    rpcs = meta.get('public_rpcs') or []
    return rpcs[0] if rpcs else None


def token_key(chain_id: int, address: str) -> str:
    """Identity key for a token: numeric chain id plus lowercase address."""

    return f"{int(chain_id)}:{address.lower()}"


__all__ = [
    'NATIVE_PLACEHOLDER',
    'MULTICALL3_ADDRESS',
    'CHAIN_METADATA',
    'COMMON_TOKENS',
    'is_supported_chain',
    'chain_name',
    'rpc_url_for',
    'token_key',
]


DEFAULT_SOURCE_CHAIN_ID = 8453
DEFAULT_DEST_CHAIN_ID = 42161

# (label, slippage in bps); None lets Relay pick
SLIPPAGE_PRESETS = [
    ('Auto', None),
    ('0.5%', 50),
    ('1%', 100),
    ('3%', 300),
]
