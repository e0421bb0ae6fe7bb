"""Shared API dependency providers."""

from __future__ import annotations

from fastapi import Request

from codeshelf.container import AppContainer
from codeshelf.core.project_manager import ProjectManager
from codeshelf.core.scan_job_manager import ScanJobManager
from codeshelf.core.search_index import SearchIndex
from codeshelf.rpc.dispatcher import RPCDispatcher


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_project_manager(request: Request) -> ProjectManager:
    return get_container(request).projects


def get_search_index(request: Request) -> SearchIndex:
    return get_container(request).index


def get_scan_job_manager(request: Request) -> ScanJobManager:
    return get_container(request).jobs


def get_dispatcher(request: Request) -> RPCDispatcher:
    return request.app.state.dispatcher
