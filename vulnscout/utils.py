"""File, cache-directory and TLS helpers."""

from __future__ import annotations

import os
import shutil
import ssl
import stat
import sys
import tempfile

_CACHE_SUBDIR = "vulnscout"
_settings: dict[str, str] = {"cache_dir": ""}


def _user_cache_dir() -> str:
    if sys.platform == "win32":
        local = os.environ.get("LOCALAPPDATA")
        if not local:
            raise OSError("%LocalAppData% is not defined")
        return local
    home = os.environ.get("HOME")
    if sys.platform == "darwin":
        if not home:
            raise OSError("$HOME is not defined")
        return os.path.join(home, "Library", "Caches")
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return xdg
    if not home:
        raise OSError("neither $XDG_CACHE_HOME nor $HOME are defined")
    return os.path.join(home, ".cache")


def default_cache_dir() -> str:
    """Return the default cache directory, under the user cache dir or the temp dir."""
    try:
        base = _user_cache_dir()
    except OSError:
        base = tempfile.gettempdir()
    return os.path.join(base, _CACHE_SUBDIR)


def cache_dir() -> str:
    """Return the cache directory currently in use."""
    return _settings["cache_dir"]


def set_cache_dir(directory: str) -> None:
    """Set the cache directory used by later operations."""
    _settings["cache_dir"] = directory


def copy_file(src: str, dst: str) -> int:
    """Copy a regular file and return the number of bytes written."""
    mode = os.stat(src).st_mode
    if not stat.S_ISREG(mode):
        raise ValueError(f"{src} is not a regular file")
    with open(src, "rb") as source, open(dst, "wb") as destination:
        shutil.copyfileobj(source, destination)
        return destination.tell()


def load_tls_config(ca_cert_path: str, cert_path: str, key_path: str) -> ssl.SSLContext:
    """Build a client TLS context from a certificate, its key and a CA bundle."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    context.load_verify_locations(cafile=ca_cert_path)
    return context