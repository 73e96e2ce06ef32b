"""
Contract ABIs and frozen selectors for the creator token and payment contracts.
"""

# 4-byte selectors of the deployed payment contract. These are part of the
# external interface and must not be recomputed.
APPROVE_SELECTOR = "0x095ea7b3"
PAY_FOR_GENERATION_SELECTOR = "0x7c4f5c5b"
PAY_FOR_MINTING_SELECTOR = "0xd0e521c0"

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

_SPLIT_OUTPUTS = [
    {"internalType": "uint256", "name": "writer", "type": "uint256"},
    {"internalType": "uint256", "name": "platform", "type": "uint256"},
    {"internalType": "uint256", "name": "creatorPool", "type": "uint256"},
]

# Creator token ABI (ERC-20 subset plus revenue split reads)
CREATOR_TOKEN_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "spender", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"}
        ],
        "name": "approve",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "revenueSplitBps",
        "outputs": _SPLIT_OUTPUTS,
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "mintSplitBps",
        "outputs": _SPLIT_OUTPUTS,
        "stateMutability": "view",
        "type": "function"
    },
]
