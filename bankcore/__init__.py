"""
bankcore - money movement core of a P2P banking service.
"""
