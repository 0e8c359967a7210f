"""
infrastructure - Concrete implementations of domain ports.

Contains all vendor-specific code: LangChain chat models, settings, config files.
Depends on domain/ only (implements ports). Never imported by application/.
"""
