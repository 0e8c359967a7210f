"""
adapters - Entry points (CLI) built on the factory composition root.
"""
