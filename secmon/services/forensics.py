"""
Forensic context collection.

Depth depends on the detector classification: TRIGGER detectors get a classified call
chain of up to 20 frames plus timing and memory; SCAN detectors get a 3-frame trace and
a description of the scan environment. Collection never raises on malformed frames.
"""

import inspect
import ipaddress
import logging
import os
import platform
import sys
import sysconfig
import time
import traceback
from collections.abc import Iterable, Sequence
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import lru_cache
from importlib import metadata
from itertools import islice
from typing import Any

from pydantic import ValidationError

from secmon.detectors.base import IssuerClassification
from secmon.schemas.findings import StackFrame
from secmon.schemas.forensics import (
    BacktraceInfo,
    CallFrame,
    ContextLevel,
    ExecutionContext,
    ExecutionContextType,
    ForensicContext,
    RequestContext,
)
from secmon.services.fingerprint import PACKAGE_ROOT

logger = logging.getLogger(__name__)

FULL_TRACE_DEPTH = 20
MINIMAL_TRACE_DEPTH = 3
CALL_CHAIN_OUTPUT_LIMIT = 10

# Checked in order; the first header holding a public IP wins.
CLIENT_IP_HEADERS = (
    "cf-connecting-ip",
    "x-real-ip",
    "x-forwarded-for",
    "x-forwarded",
    "x-cluster-client-ip",
    "forwarded-for",
    "forwarded",
)

_PACKAGE_DIR_MARKERS = ("/site-packages/", "/dist-packages/")

DETECTION_METHODS = {
    IssuerClassification.TRIGGER: "Real-time Attack Detection",
    IssuerClassification.SCAN: "Proactive Security Scan",
    IssuerClassification.HYBRID: "Combined Detection Method",
}

# Set by the HTTP middleware for the duration of a request.
request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)
# Set by scheduler entry points ("CRON") or interactive commands ("CLI").
execution_mode: ContextVar[ExecutionContextType | None] = ContextVar(
    "execution_mode", default=None
)


def client_ip_from_headers(headers: dict[str, str], peer: str | None = None) -> str:
    """
    Resolve the client IP behind proxies.

    Each header in CLIENT_IP_HEADERS is tried in order; the first comma-separated value
    must be a public address to be accepted. Falls back to the peer address.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    for header in CLIENT_IP_HEADERS:
        raw = lowered.get(header)
        if not raw or not raw.strip():
            continue
        candidate = raw.split(",")[0].strip()
        if candidate.lower().startswith("for="):
            candidate = candidate[4:].strip('"')
        if _is_public_ip(candidate):
            return candidate
    return peer or "unknown"


def _is_public_ip(value: str) -> bool:
    try:
        return ipaddress.ip_address(value).is_global
    except ValueError:
        return False


@lru_cache(maxsize=1)
def _installed_distributions() -> dict[str, str]:
    installed: dict[str, str] = {}
    for dist in metadata.distributions():
        name = dist.metadata.get("Name")
        if name:
            installed[name] = dist.version
    return dict(sorted(installed.items(), key=lambda item: item[0].lower()))


def _memory_usage() -> tuple[int | None, int | None]:
    """(current RSS bytes, peak RSS bytes); None where the platform does not expose it."""
    try:
        import resource
    except ImportError:
        return None, None
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is KiB on Linux, bytes on macOS
    peak = usage if sys.platform == "darwin" else usage * 1024
    try:
        with open("/proc/self/statm", encoding="ascii") as fh:
            resident_pages = int(fh.read().split()[1])
        current = resident_pages * os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError, IndexError):
        current = None
    return current, peak


class ForensicCollector:
    """
    Builds ForensicContext snapshots.

    app_root: frames under it are classified as "module" (the monitored application).
    internal_paths: frames under these are "internal" (secmon itself).
    """

    def __init__(
        self,
        app_root: str | None = None,
        internal_paths: Iterable[str] | None = None,
        debug: bool = False,
    ) -> None:
        self.app_root = _normalize(app_root) if app_root else None
        self.internal_paths = tuple(
            _normalize(p) for p in (internal_paths or [PACKAGE_ROOT]) if p
        ) or (_normalize(PACKAGE_ROOT),)
        self.debug = debug
        paths = sysconfig.get_paths()
        self._stdlib_paths = tuple(
            {_normalize(paths[key]) for key in ("stdlib", "platstdlib") if paths.get(key)}
        )

    def collect(
        self,
        classification: IssuerClassification,
        skip_frames: int = 0,
        *,
        phase: str | None = None,
        frames: Sequence[StackFrame | dict[str, Any]] | None = None,
    ) -> ForensicContext:
        """
        Snapshot for one detection.

        frames: explicit call chain, innermost first. When omitted the live stack of the
        caller is captured, skipping skip_frames frames above collect().
        """
        if classification is IssuerClassification.HYBRID:
            full = phase == "trigger"
            level: ContextLevel = "selective_forensic" if full else "minimal_forensic"
        elif classification is IssuerClassification.TRIGGER:
            full = True
            level = "full_forensic"
        else:
            full = False
            level = "minimal_forensic"

        depth = FULL_TRACE_DEPTH if full else MINIMAL_TRACE_DEPTH
        if frames is None:
            chain = self._capture_stack(skip_frames + 1, depth)
        else:
            chain = [_coerce_frame(f) for f in list(frames)[skip_frames : skip_frames + depth]]

        context = ForensicContext(
            issuer_type=classification.value,
            detection_method=DETECTION_METHODS[classification],
            context_level=level,
            timestamp=datetime.now(timezone.utc).isoformat(),
            execution_context=self.execution_context(),
            backtrace_info=self._backtrace_info(chain, limited=not full),
        )
        if full:
            context.timing_info = self._timing_info()
            context.memory_usage, context.peak_memory = _memory_usage()
        else:
            context.scan_context = self._scan_context()
        return context

    def execution_context(self) -> ExecutionContext:
        req = request_context.get()
        if req is not None:
            return ExecutionContext(
                context_type="REQUEST",
                source="HTTP Request",
                ip_address=client_ip_from_headers(req.headers, req.client_host),
                user_agent=req.headers.get("user-agent", "unknown"),
                request_uri=req.path,
                request_method=req.method,
                http_host=req.headers.get("host"),
                http_referer=req.headers.get("referer"),
                user_id=req.user_id,
                username=req.username,
            )
        mode = execution_mode.get()
        if mode is None:
            mode = "CLI" if sys.stdin is not None and sys.stdin.isatty() else "SCRIPT"
        sources = {
            "CLI": "Command Line",
            "CRON": "Scheduled Job",
            "SCRIPT": "Direct Script Execution",
            "REQUEST": "HTTP Request",
        }
        return ExecutionContext(context_type=mode, source=sources[mode], user_agent=mode)

    def classify(self, frame: StackFrame) -> tuple[str, str | None]:
        """(source_type, package_name) for one frame."""
        if frame.file == "unknown":
            return "unknown", None
        path = _normalize(frame.file)
        if any(p in path for p in self.internal_paths):
            return "internal", None
        for marker in _PACKAGE_DIR_MARKERS:
            if marker in path:
                package = path.split(marker, 1)[1].split("/", 1)[0]
                return "plugin", package.removesuffix(".py") or "unknown"
        if any(path.startswith(p) for p in self._stdlib_paths):
            return "core", None
        if self.app_root and path.startswith(self.app_root):
            return "module", None
        return "external", None

    def _relative(self, path: str) -> str:
        normalized = _normalize(path)
        if self.app_root and normalized.startswith(self.app_root):
            return normalized[len(self.app_root) :].lstrip("/") or normalized
        return normalized

    def _backtrace_info(self, chain: list[StackFrame], limited: bool) -> BacktraceInfo:
        call_chain: list[CallFrame] = []
        files: list[str] = []
        packages: list[str] = []
        for index, frame in enumerate(chain):
            source_type, package = self.classify(frame)
            relative = self._relative(frame.file) if frame.file != "unknown" else "unknown"
            call_chain.append(
                CallFrame(
                    frame=index,
                    file=frame.file,
                    line=frame.line,
                    function=frame.function,
                    cls=frame.cls,
                    file_relative=relative,
                    source_type=source_type,
                    package_name=package,
                )
            )
            if relative != "unknown" and relative not in files:
                files.append(relative)
            if package and package not in packages:
                packages.append(package)

        likely = _likely_source(call_chain)
        summary = likely
        if packages:
            summary += f" (Packages: {', '.join(packages)})"
        return BacktraceInfo(
            total_frames=len(chain),
            call_chain=call_chain[:CALL_CHAIN_OUTPUT_LIMIT],
            files_involved=files,
            likely_source=likely,
            source_summary=summary,
            packages=packages,
            limited_trace=limited,
        )

    def _capture_stack(self, skip: int, depth: int) -> list[StackFrame]:
        # walk_stack yields innermost first, starting at this frame
        walked = islice(traceback.walk_stack(inspect.currentframe()), skip + 1, skip + 1 + depth)
        chain = []
        for frame, lineno in walked:
            owner = frame.f_locals.get("self")
            chain.append(
                StackFrame(
                    file=frame.f_code.co_filename,
                    line=lineno or 0,
                    function=frame.f_code.co_name,
                    cls=type(owner).__name__ if owner is not None else None,
                )
            )
        return chain

    def _timing_info(self) -> dict[str, Any]:
        now = time.time()
        req = request_context.get()
        started = req.started_at if req is not None and req.started_at else now
        local = time.localtime(now)
        return {
            "request_time": started,
            "current_time": now,
            "execution_time": round(now - started, 6),
            "hour_of_day": local.tm_hour,
            "day_of_week": (local.tm_wday + 1) % 7,
            "timezone": time.tzname[local.tm_isdst > 0],
        }

    def _scan_context(self) -> dict[str, Any]:
        mode = execution_mode.get()
        return {
            "scan_type": "cron_scan" if mode == "CRON" else "manual_scan",
            "is_background": mode == "CRON",
            "scan_timestamp": datetime.now(timezone.utc).isoformat(),
            "scan_environment": {
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "active_modules": _installed_distributions(),
                "debug_mode": self.debug,
            },
        }


def _coerce_frame(raw: StackFrame | dict[str, Any] | Any) -> StackFrame:
    if isinstance(raw, StackFrame):
        return raw
    if isinstance(raw, dict):
        data = dict(raw)
        if "class" in data and "cls" not in data:
            data["cls"] = data.pop("class")
        try:
            return StackFrame.model_validate(data)
        except ValidationError:
            logger.debug("Malformed stack frame replaced with unknown", extra={"frame": str(raw)[:200]})
    return StackFrame()


def _likely_source(chain: list[CallFrame]) -> str:
    for frame in chain:
        if frame.source_type == "plugin":
            return f"Package: {frame.package_name}"
        if frame.source_type == "module":
            return f"Module: {frame.file_relative}"
        if frame.source_type == "external":
            return f"External: {frame.file_relative}"
    for frame in chain:
        if frame.source_type == "core":
            return f"Python Core: {frame.file_relative}"
    return "Unknown source"


def _normalize(path: str) -> str:
    return path.replace("\\", "/")
