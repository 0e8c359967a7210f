"""
agent.tools - Tool contract, validated registry, retrying call handler.
"""
