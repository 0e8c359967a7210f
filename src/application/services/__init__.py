"""
application.services - Team and agency orchestration over injected agents.
"""
