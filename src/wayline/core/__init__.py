"""
Networking and concurrency primitives.

    socket_server.py  listener + accept loop
    connection.py     one client socket, one request
    thread_pool.py    workers that run each connection
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool, Worker, WorkerState

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ThreadPool",
    "Worker",
    "WorkerState",
]
