"""
Migration Diagrammer backend - FastAPI app exposing the editor over HTTP and
WebSocket.
"""
