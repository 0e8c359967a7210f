"""
domain - Value objects, ports and exceptions shared by every layer.

No dependencies on application/, agent/ or infrastructure/.
"""
