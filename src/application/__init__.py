"""
application - Run context, notification bus, and the team/agency services.

Depends on domain/ only. Agents are reached through domain.ports.AgentPort.
"""
