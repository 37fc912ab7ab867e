#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Process, prompt, network and file helpers of the migration tools

Every external command goes through run(). Code calls it as
``dmutil.run`` so that tests can swap the module attribute.
"""

import collections
import errno
import getpass
import locale
import logging
import os
import re
import shutil
import socket
import subprocess
import time
import urllib.parse

import netaddr

logger = logging.getLogger(__name__)

# Timestamp used in backup, snapshot, report and audit log names
TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S'

DOMAIN_LABEL_RE = re.compile(r'^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?$')
MAX_DOMAIN_LENGTH = 253

# PATH of the commands run by the tools, independent of the caller's
COMMAND_PATH = "/bin:/sbin:/usr/bin:/usr/sbin:/usr/local/bin"

NOLOG_MASK = 'XXXXXXXX'


class CheckedIPAddress(netaddr.IPAddress):
    """An IPv4 or IPv6 address usable for a host entry

    Reserved, multicast and link-local addresses are rejected, loopback
    unless @allow_loopback.
    """
    def __init__(self, addr, allow_loopback=False):
        if isinstance(addr, CheckedIPAddress):
            super(CheckedIPAddress, self).__init__(addr)
            return
        addr = str(addr).strip()
        try:
            super(CheckedIPAddress, self).__init__(addr)
        except (netaddr.AddrFormatError, ValueError) as e:
            raise ValueError(e)

        if self.is_loopback():
            if not allow_loopback:
                raise ValueError("loopback address %s not allowed" % addr)
            return
        for test, kind in ((self.is_reserved, "reserved"),
                           (self.is_link_local, "link-local"),
                           (self.is_multicast, "multicast")):
            if test():
                raise ValueError("%s address %s not allowed" % (kind, addr))


def validate_domain_name(domain_name):
    """Return @domain_name lower-cased without a trailing dot

    Raises ValueError when it is not a syntactically valid DNS name.
    """
    if not domain_name:
        raise ValueError("empty domain name")
    if domain_name.endswith('.'):
        domain_name = domain_name[:-1]
    if len(domain_name) > MAX_DOMAIN_LENGTH:
        raise ValueError("domain name is too long")
    for label in domain_name.split('.'):
        if not DOMAIN_LABEL_RE.match(label):
            raise ValueError("invalid label '%s' in domain name '%s'" %
                             (label, domain_name))
    return domain_name.lower()


def timestamp():
    return time.strftime(TIMESTAMP_FORMAT)


class _RunResult(collections.namedtuple('_RunResult',
                                        'output error_output returncode')):
    """Result of dmutil.run"""


class CalledProcessError(subprocess.CalledProcessError):
    """A command exited with a non-zero status; carries its stderr"""
    def __init__(self, returncode, cmd, output=None, stderr=None):
        super(CalledProcessError, self).__init__(returncode, cmd, output)
        self.stderr = stderr

    def __str__(self):
        message = "Command %s returned non-zero exit status %r" % (
            self.cmd, self.returncode)
        if self.stderr:
            message += ": %r" % self.stderr
        return "%s(%s)" % (type(self).__name__, message)

    __repr__ = __str__


def nolog_replace(string, nolog):
    """Mask every value of @nolog in @string

    Plain, shell-quoted and URL-quoted spellings are masked.
    """
    for value in nolog:
        if not value or not isinstance(value, str):
            continue
        shell_quoted = "'%s'" % value.replace("'", "'\\''")
        for spelling in (shell_quoted, value, urllib.parse.quote(value)):
            string = string.replace(spelling, NOLOG_MASK)
    return string


def _decode(data, encoding, strict=True):
    if data is None:
        return ''
    return data.decode(encoding, 'strict' if strict else 'replace')


def run(args, stdin=None, raiseonerr=True, nolog=(), env=None,
        capture_output=False, skip_output=False, cwd=None,
        capture_error=False, encoding=None):
    """Run an external command and wait for it

    :param args: argv of the command
    :param stdin: text or bytes written to the command's standard input
    :param raiseonerr: raise CalledProcessError on a non-zero exit status
    :param nolog: strings (passwords) masked in everything logged and in
        the raised error
    :param env: environment, default is ours with a fixed PATH
    :param capture_output: return stdout
    :param skip_output: discard stdout and stderr without logging them
    :param cwd: working directory
    :param capture_error: return stderr
    :param encoding: of stdin and the output, default from the locale

    :return: _RunResult(output, error_output, returncode); the output
        fields are None unless captured.
    """
    if isinstance(nolog, str):
        raise ValueError('nolog must be a tuple of strings.')
    if skip_output and (capture_output or capture_error):
        raise ValueError('skip_output is incompatible with '
                         'capture_output or capture_error')

    if env is None:
        env = dict(os.environ, PATH=COMMAND_PATH)
    encoding = encoding or locale.getpreferredencoding()
    if isinstance(stdin, str):
        stdin = stdin.encode(encoding)
    sink = subprocess.DEVNULL if skip_output else subprocess.PIPE

    command = nolog_replace(repr(args), nolog)
    logger.debug("Running %s", command)
    process = None
    try:
        process = subprocess.Popen(
            args, stdin=subprocess.PIPE if stdin else None, stdout=sink,
            stderr=sink, close_fds=True, env=env, cwd=cwd)
        stdout, stderr = process.communicate(stdin)
    except KeyboardInterrupt:
        logger.debug("Interrupted, waiting for %s", command)
        if process is not None:
            process.wait()
        raise
    except OSError as e:
        logger.debug("Cannot run %s: %s", command, e)
        raise

    returncode = process.returncode
    logger.debug("Exit status %s", returncode)
    if skip_output:
        logged_out = logged_err = None
    else:
        logged_out = nolog_replace(_decode(stdout, encoding, False), nolog)
        logged_err = nolog_replace(_decode(stderr, encoding, False), nolog)
        logger.debug("stdout=%s", logged_out)
        logger.debug("stderr=%s", logged_err)

    if returncode != 0 and raiseonerr:
        raise CalledProcessError(returncode, command, logged_out, logged_err)

    return _RunResult(
        _decode(stdout, encoding) if capture_output else None,
        _decode(stderr, encoding) if capture_error else None,
        returncode)


class SecretHolder:
    """In-process holder for a credential.

    The secret is kept in a mutable buffer that is overwritten by clear().
    It never shows up in repr() or str().
    """
    __slots__ = ('_buffer',)

    def __init__(self, secret=None):
        self._buffer = bytearray()
        if secret:
            self.set(secret)

    def set(self, secret):
        self.clear()
        self._buffer.extend(secret.encode('utf-8'))

    def reveal(self):
        return self._buffer.decode('utf-8')

    def clear(self):
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        del self._buffer[:]

    def __bool__(self):
        return len(self._buffer) > 0

    def __repr__(self):
        return '<SecretHolder %s>' % ('********' if self else 'empty')

    __str__ = __repr__


def _ask_text(prompt, allow_empty):
    while True:
        try:
            answer = input("%s: " % prompt).strip()
        except EOFError:
            if allow_empty:
                return ''
            raise RuntimeError("Failed to get user input")
        if answer or allow_empty:
            return answer


def _ask_bool(prompt, default):
    while True:
        try:
            answer = input("%s (y/n) [%s]: " % (
                prompt, 'y' if default else 'n')).strip().lower()
        except EOFError:
            return default
        if not answer:
            return default
        if answer[0] in 'yn':
            return answer[0] == 'y'


def _ask_with_default(prompt, default, convert):
    while True:
        try:
            answer = input("%s [%s]: " % (prompt, default)).strip()
        except EOFError:
            return default
        if not answer:
            return default
        try:
            return convert(answer)
        except ValueError:
            continue


def user_input(prompt, default=None, allow_empty=True):
    """Ask on the terminal; the type of @default selects the answer type

    Without a default a string is returned. With a bool default the
    question is a yes/no one. End of input returns the default.
    """
    if default is None:
        return _ask_text(prompt, allow_empty)
    if isinstance(default, bool):
        return _ask_bool(prompt, default)
    if isinstance(default, int):
        return _ask_with_default(prompt, default, int)
    return _ask_with_default(prompt, default, str)


def user_input_password(prompt, allow_empty=False):
    """Read a password without echo and wrap it in a SecretHolder"""
    while True:
        try:
            answer = getpass.getpass("%s: " % prompt)
        except EOFError:
            raise RuntimeError("Failed to get user input")
        if answer or allow_empty:
            return SecretHolder(answer)
        print("Password cannot be empty")


def host_port_open(host, port, socket_timeout=None):
    """True when a TCP connection to @port succeeds on every address of
    @host
    """
    try:
        addresses = socket.getaddrinfo(host, port, socket.AF_UNSPEC,
                                       socket.SOCK_STREAM)
    except socket.gaierror as e:
        logger.debug("Cannot resolve %s: %s", host, e)
        return False

    for family, socktype, proto, _canonname, sockaddr in addresses:
        try:
            with socket.socket(family, socktype, proto) as s:
                s.settimeout(socket_timeout)
                s.connect(sockaddr)
        except OSError as e:
            logger.debug("Port %s on %s is not reachable: %s", port,
                         sockaddr[0], e)
            return False
    return True


def resolves(hostname):
    """Return True when hostname has at least one address"""
    try:
        return bool(socket.getaddrinfo(hostname, None))
    except (socket.gaierror, UnicodeError):
        return False


def which(command):
    """Return the path of command on PATH or None"""
    return shutil.which(command)


def remove_file(filename):
    """Remove a file, a missing one is not an error"""
    try:
        os.unlink(filename)
    except OSError as e:
        if e.errno != errno.ENOENT:
            logger.error("Error removing %s: %s", filename, e)


def rmtree(path):
    """Remove a directory tree, errors are logged"""
    try:
        if os.path.exists(path):
            shutil.rmtree(path)
    except OSError as e:
        logger.error("Error removing %s: %s", path, e)
