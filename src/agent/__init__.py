"""
agent - Single-agent execution layer.

Contains tools, memory, prompts, and the executor that runs the LLM+tool loop.
Depends on domain/ and application/. Never imports from infrastructure/.
"""
