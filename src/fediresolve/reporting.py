"""
Reporting: progress and diagnostics of a resolution go to stderr, never to stdout.
"""

import logging
import logging.config
import sys
import traceback

logging.config.dictConfig({
    'version'                  : 1,
    'disable_existing_loggers' : False,
    'formatters'               : {
        'standard' : {
            'format' : '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            'datefmt' : '%Y-%m-%dT%H:%M:%SZ'
        },
    },
    'handlers' : {
        'stderr' : {
            'level'     : 'DEBUG',
            'formatter' : 'standard',
            'class'     : 'logging.StreamHandler',
            'stream'    : 'ext://sys.stderr'
        }
    },
    'loggers' : {
        '' : {
            'handlers'  : [ 'stderr' ],
            'level'     : 'WARNING',
            'propagate' : True
        }
    }
})
LOG = logging.getLogger( 'fediresolve' )


def set_reporting_level(n_verbose_flags: int) -> None:
    """
    Map the number of -v flags on the command-line to a log level.
    """
    if n_verbose_flags == 1:
        LOG.setLevel(logging.INFO)
    elif n_verbose_flags >= 2:
        LOG.setLevel(logging.DEBUG)
    else:
        LOG.setLevel(logging.WARNING)


def trace(*args) -> None:
    """
    Emit a trace message, such as an outgoing HTTP request.

    args: the message or message components
    """
    if LOG.isEnabledFor(logging.DEBUG):
        LOG.debug(_construct_msg(True, False, args))


def info(*args) -> None:
    """
    Emit an info message, such as the route chosen for an input.

    args: the message or message components
    """
    if LOG.isEnabledFor(logging.INFO):
        LOG.info(_construct_msg(False, False, args))


def warning(*args) -> None:
    """
    Emit a warning message, such as a fallback attempt that did not work out.

    args: the message or message components
    """
    if LOG.isEnabledFor(logging.WARNING):
        LOG.warning(_construct_msg(False, LOG.isEnabledFor(logging.DEBUG), args))


def error(*args) -> None:
    """
    Emit an error message.

    args: the message or message components
    """
    if LOG.isEnabledFor(logging.ERROR):
        LOG.error(_construct_msg(False, LOG.isEnabledFor(logging.DEBUG), args))


def fatal(*args) -> None:
    """
    Emit a fatal error message and exit with code 1.

    args: the message or message components
    """
    if args and LOG.isEnabledFor(logging.CRITICAL):
        LOG.critical(_construct_msg(False, LOG.isEnabledFor(logging.DEBUG), args))

    raise SystemExit(1)


def _construct_msg(with_loc: bool, with_tb: bool, args: tuple) -> str:
    """
    Construct a message from these arguments.

    with_loc: prefix the message with the calling location
    with_tb: append the traceback if the last argument is an exception
    args: the message or message components
    return: string message
    """
    ret = ''
    if with_loc:
        frame = sys._getframe(2) # pylint: disable=protected-access
        ret = f'{ frame.f_code.co_filename }#{ frame.f_lineno } { frame.f_code.co_name }: '

    def m(a):
        if a is None:
            return '<undef>'
        if isinstance(a, bytes):
            return a.decode('utf-8', errors='replace')
        if isinstance(a, OSError):
            return type(a).__name__ + ' ' + str(a)
        return a

    ret += ' '.join(str(m(a)) for a in args)

    if with_tb and args and isinstance(args[-1], Exception):
        last = args[-1]
        ret += '\n' + ''.join(traceback.format_exception(type(last), last, last.__traceback__))

    return ret
