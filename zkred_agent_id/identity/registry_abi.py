"""
AgentRegistry ABI fragments (minimal, artifact-free).

Only the calls used by the Python client are listed.
"""

AGENT_REGISTRY_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "agent", "type": "address"}],
        "name": "getAgentByAddress",
        "outputs": [
            {"internalType": "string", "name": "did", "type": "string"},
            {"internalType": "uint256", "name": "agentId", "type": "uint256"},
            {"internalType": "string", "name": "description", "type": "string"},
            {"internalType": "string", "name": "serviceEndpoint", "type": "string"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "string", "name": "did", "type": "string"},
            {"internalType": "string", "name": "description", "type": "string"},
            {"internalType": "string", "name": "serviceEndpoint", "type": "string"},
        ],
        "name": "registerAgent",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "", "type": "address"}],
        "name": "nonces",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

AGENT_REGISTRATION_TYPES = {
    "AgentRegistration": [
        {"name": "agent", "type": "address"},
        {"name": "did", "type": "string"},
        {"name": "description", "type": "string"},
        {"name": "serviceEndpoint", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "expiry", "type": "uint256"},
    ]
}

_ABIS = {
    "AgentRegistry": AGENT_REGISTRY_ABI,
}


def get_abi(name: str):
    return _ABIS.get(name)
