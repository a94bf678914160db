"""
Input validation and safe I/O.

Everything that turns outside input into a filesystem path or a network
request goes through here first:
- year strings, which become ``<output_dir>/<year>.json``
- the open data CSV URL and the realtime alert feed URL
- the configuration file path

The HTTP session shared by the download and the alert feed is built here too.
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .error_handler import ValidationError


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


class InputValidator:
    """Validators for years, source URLs and config file paths."""

    # fullmatch with ASCII digits only: rejects "2024\n", full-width digits, "../x"
    YEAR_PATTERN = re.compile(r'[0-9]{4}')

    MAX_FILE_PATH_LENGTH = 260
    MAX_URL_LENGTH = 2048
    URL_SCHEMES = ('http', 'https')
    # never legitimate in the open data or alert feed URLs
    URL_FORBIDDEN_CHARS = frozenset('<>"\'` ')

    @classmethod
    def validate_year(cls, year: str) -> str:
        """Return ``year`` if it is exactly four ASCII digits.

        Raises:
            ValidationError: anything else, including non-strings
        """
        if not isinstance(year, str):
            raise ValidationError(f"Year must be string, got: {type(year).__name__}", field="year", value=year)

        if not cls.YEAR_PATTERN.fullmatch(year):
            raise ValidationError(f"Year must be exactly 4 digits: {year!r}", field="year", value=year)

        return year

    @classmethod
    def validate_file_path(cls, file_path: Union[str, Path],
                           allow_create: bool = True,
                           require_exists: bool = False) -> Path:
        """Resolve a config file path, which must stay under the cwd or home.

        Args:
            file_path: path as given on the command line or defaulted
            allow_create: create missing parent directories
            require_exists: the file itself must exist

        Returns:
            Path: the resolved path

        Raises:
            ValidationError: unusable or disallowed path
        """
        if not isinstance(file_path, (str, Path)):
            raise ValidationError(f"File path must be string or Path, got: {type(file_path).__name__}",
                                  field="file_path")

        path_str = str(file_path)
        if len(path_str) > cls.MAX_FILE_PATH_LENGTH:
            raise ValidationError(f"File path too long: {len(path_str)} > {cls.MAX_FILE_PATH_LENGTH}",
                                  field="file_path")
        if '\x00' in path_str:
            raise ValidationError("File path contains null bytes", field="file_path")

        try:
            resolved_path = Path(path_str).resolve()
        except (OSError, RuntimeError) as e:
            raise ValidationError(f"Cannot resolve file path: {e}", field="file_path", cause=e) from e

        allowed_roots = (Path.cwd().resolve(), Path.home().resolve())
        if not any(_is_within(resolved_path, root) for root in allowed_roots):
            raise ValidationError(f"File path outside allowed directories: {resolved_path}",
                                  field="file_path", value=str(resolved_path))

        if require_exists and not resolved_path.exists():
            raise ValidationError(f"File does not exist: {resolved_path}", field="file_path")

        if allow_create:
            try:
                resolved_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValidationError(f"Cannot create parent directory: {e}", field="file_path", cause=e) from e

        if resolved_path.exists() and not os.access(resolved_path, os.R_OK):
            raise ValidationError(f"File not readable: {resolved_path}", field="file_path")

        return resolved_path

    @classmethod
    def validate_url(cls, url: str) -> str:
        """Return the stripped URL if it is a usable http(s) source.

        Raises:
            ValidationError: malformed URL or a scheme other than http/https
        """
        if not isinstance(url, str):
            raise ValidationError(f"URL must be string, got: {type(url).__name__}", field="url", value=url)

        url = url.strip()
        if not url:
            raise ValidationError("URL cannot be empty", field="url")
        if len(url) > cls.MAX_URL_LENGTH:
            raise ValidationError(f"URL too long: {len(url)} > {cls.MAX_URL_LENGTH}", field="url")

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(f"Invalid URL format: {e}", field="url", value=url, cause=e) from e

        if parsed.scheme not in cls.URL_SCHEMES:
            raise ValidationError(f"Invalid URL scheme: {parsed.scheme!r}", field="url", value=url)
        if cls.URL_FORBIDDEN_CHARS.intersection(url):
            raise ValidationError(f"URL contains suspicious characters: {url}", field="url", value=url)
        if not parsed.netloc:
            raise ValidationError("URL missing hostname", field="url", value=url)

        return url


class SecureFileHandler:
    """Config file read and atomic write."""

    CONFIG_FILE_PERMISSIONS = 0o644

    @classmethod
    def read_secure_file(cls, file_path: Path) -> str:
        validated_path = InputValidator.validate_file_path(file_path, require_exists=True)

        try:
            return validated_path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise ValidationError(f"Cannot read file: {e}", field="file_path", cause=e) from e

    @classmethod
    def write_secure_file(cls, file_path: Path, content: str, permissions: int = 0o600) -> None:
        """Write ``content`` to a sibling temp file, then replace ``file_path``.

        A failed write leaves any previous file untouched and no temp file behind.
        """
        validated_path = InputValidator.validate_file_path(file_path, allow_create=True)

        fd, temp_name = tempfile.mkstemp(prefix=f".{validated_path.name}.", suffix=".tmp",
                                         dir=str(validated_path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
            os.chmod(temp_name, permissions)
            os.replace(temp_name, validated_path)
        except OSError as e:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise ValidationError(f"Cannot write secure file: {e}", field="file_path", cause=e) from e


def validate_year_input(year: str) -> str:
    return InputValidator.validate_year(year)


def validate_file_path_input(file_path: Union[str, Path], **kwargs) -> Path:
    return InputValidator.validate_file_path(file_path, **kwargs)


def validate_url_input(url: str) -> str:
    return InputValidator.validate_url(url)


class NetworkSecurityManager:
    """Builds the HTTP session used for the open data download and the alert feed.

    Connect/read timeouts are passed per request by the callers; the session
    only adds retries for transient server errors and identifying headers.
    """

    USER_AGENT = 'tw-holidays/1.0'
    RETRY_TOTAL = 3
    RETRY_BACKOFF = 1
    RETRY_STATUSES = (429, 500, 502, 503, 504)

    @classmethod
    def create_secure_session(cls) -> requests.Session:
        session = requests.Session()
        session.verify = True

        adapter = HTTPAdapter(max_retries=Retry(
            total=cls.RETRY_TOTAL,
            backoff_factor=cls.RETRY_BACKOFF,
            status_forcelist=cls.RETRY_STATUSES,
            allowed_methods=frozenset(["GET", "HEAD"])
        ))
        for prefix in ("https://", "http://"):
            session.mount(prefix, adapter)

        session.headers.update({
            'User-Agent': cls.USER_AGENT,
            # the open data CSV or the alert feed JSON
            'Accept': 'text/csv,application/json;q=0.9,*/*;q=0.8',
            'Cache-Control': 'no-cache'
        })
        return session
