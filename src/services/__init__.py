"""
Background services and server orchestration
"""
