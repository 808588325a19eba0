"""
Chat Gateway.

WebSocket presence and message relay service.
"""
