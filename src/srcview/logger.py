"""
Wrapper around logging to provide our own functionality.

This adds the ability to log using str.format() instead of %, and to tag
messages with the file currently being decoded.
"""
from typing import (
    TYPE_CHECKING, Any, Callable, ClassVar, Dict, Generator, List, Mapping, Optional, Tuple,
    Type, Union, cast,
)
from io import StringIO
from pathlib import Path
from types import TracebackType
import contextlib
import contextvars
import logging
import os
import sys
import traceback

from srcview import StringPath


__all__ = ['LoggerAdapter', 'get_handler', 'get_logger', 'init_logging', 'context']
# Only generic in stubs!
CTX_STACK: 'contextvars.ContextVar[List[str]]' = contextvars.ContextVar('srcview_logger')
DEBUG_ENV = 'SRCVIEW_DEBUG'


class LogMessage:
    """Allow using str.format() in logging messages.

    The __str__() method performs the joining.
    """
    fmt: str
    args: Tuple[object, ...]
    kwargs: Dict[str, object]
    has_args: bool

    def __init__(
        self,
        fmt: str,
        args: Tuple[object, ...],
        kwargs: Dict[str, object],
    ) -> None:
        self.fmt = fmt
        self.args = args
        self.kwargs = kwargs
        self.has_args = bool(kwargs or args)

    def format_msg(self) -> str:
        """Format using str.format, only once."""
        # Without arguments { and } can be used freely.
        if self.has_args:
            f = self.fmt = str(self.fmt).format(*self.args, **self.kwargs)
            del self.args, self.kwargs
            self.has_args = False
            return f
        else:
            return str(self.fmt)

    def __str__(self) -> str:
        """Format the string, and indent continuation lines."""
        msg = self.format_msg()

        if '\n' not in msg:
            return msg

        lines = msg.split('\n')
        if lines[-1].isspace():
            del lines[-1]
        # | line one
        # | line two
        # |___
        return '\n | '.join(lines) + '\n |___\n'


_SysExcInfoType = Union[
    Tuple[Type[BaseException], BaseException, Optional[TracebackType]],
    Tuple[None, None, None]
]
if TYPE_CHECKING:  # Only generic in stubs.
    _AdapterBase = logging.LoggerAdapter[logging.Logger]
else:
    _AdapterBase = logging.LoggerAdapter


class LoggerAdapter(_AdapterBase):
    """Fix loggers to use str.format()."""
    logger: logging.Logger
    alias: Optional[str]

    def __init__(self, logger: logging.Logger, alias: Optional[str] = None) -> None:
        # Alias is a replacement module name for log messages.
        self.alias = alias
        self.logger = logger
        logging.LoggerAdapter.__init__(self, logger, extra={})

    def log(
        self,
        level: int,
        msg: Any,
        *args: Any,
        exc_info: Union[None, bool, _SysExcInfoType, BaseException] = None,
        stack_info: bool = False,
        extra: Optional[Mapping[str, object]] = None,
        stacklevel: int = 0,
        **kwargs: Any,
    ) -> None:
        """Log with :external:py:meth:`str.format()` semantics.

        The message is wrapped in a :py:class:`LogMessage`, which is given the
        ``args`` and ``kwargs``. The current :py:func:`context` stack is
        added to the record as ``srcview_context``.
        """
        if self.isEnabledFor(level):
            ctx = ', '.join(CTX_STACK.get([]))

            new_extra = {} if extra is None else dict(extra)
            new_extra['_srcview_alias'] = self.alias
            new_extra['srcview_context'] = f' ({ctx})' if ctx else ''

            # Account for the extra indirection of the adapter.
            if sys.version_info >= (3, 10):
                stacklevel += 2

            # noinspection PyProtectedMember
            self.logger._log(
                level,
                LogMessage(str(msg), args, kwargs),
                (),  # Formatting is done by LogMessage.
                extra=new_extra,
                exc_info=exc_info,
                stack_info=stack_info,
                stacklevel=stacklevel,
            )

    def __getattr__(self, attr: str) -> Any:
        """Delegate unknown methods to the logger."""
        return getattr(self.logger, attr)


class Formatter(logging.Formatter):
    """Trim import machinery out of tracebacks."""
    SKIP_LIBS: ClassVar[List[str]] = ['importlib', 'pytest', 'pluggy']

    def formatException(self, ei: _SysExcInfoType) -> str:
        """Skip frames from the libraries in SKIP_LIBS."""
        exc_type, exc_value, exc_tb = ei
        buffer = StringIO()

        trace: Optional[TracebackType] = exc_tb
        while trace is not None:
            filename = trace.tb_frame.f_code.co_filename.casefold()
            if all(keyword not in filename for keyword in self.SKIP_LIBS):
                break
            trace = trace.tb_next
        if trace is None:
            # Entirely inside those libraries, show everything.
            trace = exc_tb

        if exc_type is not None and exc_value is not None:
            for line in traceback.TracebackException(exc_type, exc_value, trace).format():
                buffer.write(line)

        return buffer.getvalue().rstrip('\n')

    def format(self, record: logging.LogRecord) -> str:
        """Ensure a default context is set in the record."""
        record.__dict__.setdefault('srcview_context', '')
        return super().format(record)


def get_handler(filename: StringPath) -> logging.FileHandler:
    """Cycle log files, then give the required file handler.

    Up to 5 previous logs are kept, as ``name.1.log`` ... ``name.5.log``.
    """
    path = Path(filename)
    ext = ''.join(path.suffixes)
    suffixes = ('.5', '.4', '.3', '.2', '.1', '')

    try:
        path.with_suffix(suffixes[0] + ext).unlink(missing_ok=True)
        for frm, to in zip(suffixes[1:], suffixes):
            try:
                path.with_suffix(frm + ext).rename(path.with_suffix(to + ext))
            except FileNotFoundError:
                pass
        try:
            return logging.FileHandler(path, mode='x', encoding='utf8')
        except FileExistsError:
            pass
    except PermissionError:
        pass

    # Another viewer instance holds the file open, find a free name instead.
    ind = 1
    while True:
        try:
            return logging.FileHandler(path.with_suffix(f'.{ind}{ext}'), mode='x', encoding='utf8')
        except (FileExistsError, PermissionError):
            pass
        ind += 1


class NewLogRecord(logging.LogRecord):
    """Allow passing an alias and context for log modules."""
    _srcview_alias: Optional[str] = None
    srcview_context: str = ''
    module: str

    def getMessage(self) -> str:
        """Swap in the module alias just before formatting."""
        if self._srcview_alias is not None:
            self.module = self._srcview_alias
        return super().getMessage()


def init_logging(
    filename: Optional[StringPath] = None,
    main_logger: str = '',
    *,
    error: Optional[Callable[[BaseException], object]] = None,
) -> logging.Logger:
    """Set up the logger and logging handlers.

    This also sets :py:func:`sys.excepthook`, so uncaught exceptions are logged.

    :param filename: If this is set, all logs will be written to this file as well.
    :param main_logger: Specify the name of the logger to produce under the `srcview` hierarchy.
    :param error: A function to call when uncaught exceptions are thrown.
    """
    if logging.getLogRecordFactory() is not logging.LogRecord:
        raise ValueError('Unknown record factory: ', logging.getLogRecordFactory())
    logging.setLogRecordFactory(NewLogRecord)

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    long_log_format = Formatter(
        '[{levelname}]{srcview_context} {module}.{funcName}(): {message}',
        style='{',
    )
    short_log_format = Formatter(
        '[{levelname[0]}]{srcview_context} {module}.{funcName}(): {message}',
        style='{',
    )

    if filename is not None:
        os.makedirs(os.path.dirname(os.path.abspath(filename)), exist_ok=True)
        log_handler = get_handler(filename)
        log_handler.setLevel(logging.DEBUG)
        log_handler.setFormatter(long_log_format)
        logger.addHandler(log_handler)

    if sys.stdout is not None:
        stdout_loghandler = logging.StreamHandler(sys.stdout)
        stdout_loghandler.setLevel(
            logging.DEBUG
            if os.environ.get(DEBUG_ENV, '0') == '1' else
            logging.INFO
        )
        stdout_loghandler.setFormatter(short_log_format)
        if sys.stderr is not None:
            # Warnings go to stderr only.
            stdout_loghandler.addFilter(lambda record: record.levelno < logging.WARNING)
        logger.addHandler(stdout_loghandler)

    if sys.stderr is not None:
        stderr_loghandler = logging.StreamHandler(sys.stderr)
        stderr_loghandler.setLevel(logging.WARNING)
        stderr_loghandler.setFormatter(short_log_format)
        logger.addHandler(stderr_loghandler)

    old_except_handler = sys.excepthook

    def except_handler(
        exc_type: Type[BaseException],
        exc_value: BaseException,
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Log uncaught exceptions."""
        if isinstance(exc_value, SystemExit):
            return
        logger.error('Uncaught Exception:', exc_info=(exc_type, exc_value, exc_tb))
        if error is not None:
            error(exc_value)
        if old_except_handler is not sys.__excepthook__:
            old_except_handler(exc_type, exc_value, exc_tb)

    sys.excepthook = except_handler

    if main_logger:
        return get_logger(main_logger)
    else:
        return cast(logging.Logger, LoggerAdapter(logger))


def get_logger(name: str = '', alias: Optional[str] = None) -> logging.Logger:
    """Get the named logger object.

    Module names already inside the package (``srcview.vpk``) are used as-is,
    anything else is placed into the ``srcview`` namespace. The logger is
    wrapped to use :external:py:meth:`str.format()` instead of ``%`` formatting.
    If set, ``alias`` is the name to show for the module.
    """
    if not name:
        log = logging.getLogger('srcview')
    elif name == 'srcview' or name.startswith('srcview.'):
        log = logging.getLogger(name)
    else:
        log = logging.getLogger('srcview.' + name)
    return cast(logging.Logger, LoggerAdapter(log, alias))


@contextlib.contextmanager
def context(name: str) -> Generator[str, None, None]:
    """Include additional information in any logs produced inside this block.

    The decoders use this to tag messages with the file being read.
    """
    try:
        stack = CTX_STACK.get()
    except LookupError:
        stack = []
        CTX_STACK.set(stack)
    stack.append(name)
    try:
        yield name
    finally:
        popped = stack.pop()
        assert popped is name, f'Popped incorrect value: pop({popped!r}) != ctx({name!r})!'
