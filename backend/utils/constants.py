"""Shared constants: supported chains, asset types and token standards."""

VAULT_ACCOUNTS_PATH = "/v1/vault/accounts"

# Provider testnet asset ids (the sandbox workspace runs in testnet mode)
CHAIN_CONFIG: dict[str, dict] = {
    "ethereum": {
        "asset_id": "ETH_TEST5",  # Sepolia, replaces the deprecated ETH_TEST
        "name": "Ethereum Testnet",
        "chain_id": "11155111",
        "explorer": "https://sepolia.etherscan.io",
    },
    "polygon": {
        "asset_id": "AMOY_POLYGON_TEST",
        "name": "Polygon Testnet",
        "chain_id": "80002",
        "explorer": "https://amoy.polygonscan.com",
    },
    "avalanche": {
        "asset_id": "AVAXTEST",
        "name": "Avalanche Testnet",
        "chain_id": "43113",
        "explorer": "https://testnet.snowtrace.io",
    },
}

SUPPORTED_BLOCKCHAINS = list(CHAIN_CONFIG)

ASSET_TYPES: dict[str, str] = {
    "ETH_TEST": "Test Ether",
    "GOLD": "Gold",
    "SILVER": "Silver",
    "EQUITY": "Company Equity",
    "REAL_ESTATE": "Real Estate",
    "ART": "Art",
    "CARBON_CREDITS": "Carbon Credits",
    "COMMODITIES": "Commodities",
}

# Unique assets are represented as NFTs, everything else as fungible tokens
NON_FUNGIBLE_ASSET_TYPES = {"REAL_ESTATE", "ART"}


def get_asset_id(blockchain: str) -> str:
    """Provider asset id for a blockchain. Raises KeyError if unsupported."""
    return CHAIN_CONFIG[blockchain.lower()]["asset_id"]


def get_blockchain_options(asset_type: str) -> list[str]:
    if asset_type not in ASSET_TYPES:
        return []
    return list(SUPPORTED_BLOCKCHAINS)


def get_token_standard_options(asset_type: str, blockchain: str) -> list[str]:
    if blockchain not in get_blockchain_options(asset_type):
        return []
    if asset_type in NON_FUNGIBLE_ASSET_TYPES:
        return ["ERC-721", "ERC-1155"]
    if blockchain == "ethereum":
        return ["ERC-20", "ERC-1400"]
    return ["ERC-20"]


def normalize_token_standard(value: str) -> str:
    """Accept both "ERC20" and "ERC-20" spellings."""
    text = value.strip().upper().replace("_", "-")
    if text.startswith("ERC") and not text.startswith("ERC-"):
        text = "ERC-" + text[3:]
    return text


def get_explorer_url(blockchain: str, value: str, kind: str = "address") -> str:
    base = CHAIN_CONFIG[blockchain.lower()]["explorer"]
    if kind == "tx":
        return f"{base}/tx/{value}"
    return f"{base}/address/{value}"
