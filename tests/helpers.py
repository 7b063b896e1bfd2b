"""Artifacts and addresses shared by the test modules."""

TOKEN_ABI = [
    {
        "type": "function", "name": "balanceOf", "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "totalSupply", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "transfer", "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function", "name": "mint", "stateMutability": "nonpayable",
        "inputs": [{"name": "amount", "type": "uint256"}],
        "outputs": [],
    },
]
TOKEN_BYTECODE = "0x6080604052348015600f57600080fd5b50" + "00" * 64
TOKEN_ARTIFACT = {"abi": TOKEN_ABI, "bytecode": TOKEN_BYTECODE}

COUNTER_ABI = [
    {
        "type": "constructor", "stateMutability": "nonpayable",
        "inputs": [{"name": "start", "type": "uint256"}],
    },
    {
        "type": "function", "name": "count", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "increment", "stateMutability": "nonpayable",
        "inputs": [], "outputs": [],
    },
]
COUNTER_BYTECODE = "0x608060405260405161010038038061010083398101604081905260" + "00" * 32
COUNTER_ARTIFACT = {"abi": COUNTER_ABI, "bytecode": COUNTER_BYTECODE}

HOLDER = "0x000000000000000000000000000000000000dEaD"
