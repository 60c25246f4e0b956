"""exctext — plain-text developer exception reports for Python web apps."""

from exctext.config import configure_logging, setup_logging
from exctext.details import ExceptionDetail, ExceptionDetailsProvider
from exctext.files import FileProvider, PhysicalFileProvider
from exctext.frames import FrameResolver, ResolvedFrame, TracebackFrameResolver
from exctext.middleware import ExceptionTextHandler
from exctext.options import ExceptionTextOptions
from exctext.report import RequestSnapshot, format_raw_exception, render_report

__version__ = "0.1.0"

__all__ = [
    "ExceptionDetail",
    "ExceptionDetailsProvider",
    "ExceptionTextHandler",
    "ExceptionTextOptions",
    "FileProvider",
    "FrameResolver",
    "PhysicalFileProvider",
    "RequestSnapshot",
    "ResolvedFrame",
    "TracebackFrameResolver",
    "configure_logging",
    "format_raw_exception",
    "render_report",
    "setup_logging",
]
