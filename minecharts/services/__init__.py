"""Minecharts services layer."""

from minecharts.services.executor import ExecResult, RemoteExecutor

__all__ = ["ExecResult", "RemoteExecutor"]
