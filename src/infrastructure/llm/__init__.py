"""
infrastructure.llm - LangChain chat-model construction and the LLM client adapter.
"""
