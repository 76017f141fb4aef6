"""
Base identity provider API interface and common HTTP functionality.

This module defines the abstract base class for identity provider integrations,
along with the shared HTTP client: TLS setup, token authentication headers and
JSON request/response handling over a persistent connection.
"""

import json
import ssl
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Iterator, Optional, Tuple, Union
from urllib.parse import urlparse, urljoin
from http.client import HTTPSConnection, HTTPConnection

from cryptography.hazmat.primitives.serialization import Encoding, pkcs12

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Base exception for identity provider API errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class IdentityProviderAuthError(IdentityProviderError):
    """Raised when the provider rejects the API token."""
    pass


class PaginationError(IdentityProviderError):
    """Raised when the next-page cursor cannot be followed."""
    pass


class IdentityProviderBase(ABC):
    """
    Abstract base class for identity provider integrations.

    Subclasses implement user listing and the employee number write; this class
    provides the HTTP plumbing.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the provider client.

        Args:
            config: Identity provider configuration dictionary (``idp`` section)
        """
        self.config = config
        self.base_url = config['org_url'].rstrip('/')
        self.name = config.get('name', urlparse(self.base_url).netloc)
        self.verify_ssl = config.get('verify_ssl', True)
        self.timeout = config.get('timeout', 30)

        self.parsed_url = urlparse(self.base_url)
        self.host = self.parsed_url.netloc
        self.base_path = self.parsed_url.path.rstrip('/')

        self.connection = None
        self.ssl_context = None
        self.auth_headers = {}

        self._setup_ssl_context()
        self._setup_authentication()

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if self.parsed_url.scheme != 'https':
            return

        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.name}")
            return

        self.ssl_context = ssl.create_default_context()

        ca_cert_file = self.config.get('ca_cert_file')
        if ca_cert_file:
            self._load_truststore(ca_cert_file)

    def _load_truststore(self, truststore_file: str):
        """Load custom CA certificates (PEM bundle or PKCS12)."""
        truststore_type = str(self.config.get('truststore_type', 'PEM')).upper()
        truststore_password = self.config.get('truststore_password')

        try:
            if truststore_type == 'PEM':
                self.ssl_context.load_verify_locations(cafile=truststore_file)
            elif truststore_type == 'PKCS12':
                with open(truststore_file, 'rb') as f:
                    p12_data = f.read()

                _, certificate, additional_certificates = pkcs12.load_key_and_certificates(
                    p12_data, truststore_password.encode() if truststore_password else None
                )

                ca_certs = []
                if certificate:
                    ca_certs.append(certificate.public_bytes(Encoding.PEM).decode('ascii'))
                for cert in (additional_certificates or []):
                    ca_certs.append(cert.public_bytes(Encoding.PEM).decode('ascii'))

                if ca_certs:
                    self.ssl_context.load_verify_locations(cadata='\n'.join(ca_certs))
            else:
                raise IdentityProviderError(f"Unsupported truststore type: {truststore_type}")

            logger.info(f"Loaded {truststore_type} truststore: {truststore_file}")

        except IdentityProviderError:
            raise
        except Exception as e:
            logger.error(f"Failed to load truststore {truststore_file}: {e}")
            raise IdentityProviderError(f"Truststore loading failed: {e}")

    def _setup_authentication(self):
        """Set up the Authorization header from the API token."""
        scheme = str(self.config.get('auth_scheme', 'SSWS')).upper()
        token = self.config.get('api_token')

        if not token:
            logger.error(f"No API token configured for {self.name}")
            return

        if scheme == 'BEARER':
            self.auth_headers['Authorization'] = f"Bearer {token}"
        else:
            self.auth_headers['Authorization'] = f"SSWS {token}"
        logger.debug(f"Configured {scheme} token authentication for {self.name}")

    def _get_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        """Get or create HTTP connection."""
        if self.connection:
            return self.connection

        if self.parsed_url.scheme == 'https':
            self.connection = HTTPSConnection(self.host, context=self.ssl_context, timeout=self.timeout)
        else:
            self.connection = HTTPConnection(self.host, timeout=self.timeout)

        return self.connection

    def _resolve_target(self, path: str) -> str:
        """
        Turn an API path or an absolute URL on the org host into a request target.

        Raises:
            PaginationError: If an absolute URL points at another host
        """
        if path.lower().startswith(('http://', 'https://')):
            parsed = urlparse(path)
            if parsed.netloc.lower() != self.host.lower():
                raise PaginationError(f"Refusing to follow link to foreign host {parsed.netloc}")
            target = parsed.path or '/'
            if parsed.query:
                target += '?' + parsed.query
            return target

        return urljoin(self.base_path + '/', path.lstrip('/'))

    def request_with_headers(self, method: str, path: str, body: Optional[Dict] = None,
                             headers: Optional[Dict] = None) -> Tuple[Any, Dict[str, str]]:
        """
        Make an HTTP request to the provider.

        Args:
            method: HTTP method
            path: API path relative to the org URL, or an absolute URL on the org host
            body: JSON-serialisable request body
            headers: Additional headers

        Returns:
            Tuple of (parsed JSON body, lower-cased response headers)

        Raises:
            IdentityProviderError: If the request fails or returns a non-2xx status
        """
        target = self._resolve_target(path)

        request_headers = {'Accept': 'application/json'}
        request_headers.update(self.auth_headers)
        if headers:
            request_headers.update(headers)

        request_body = None
        if body is not None:
            try:
                request_body = json.dumps(body)
            except (TypeError, ValueError) as e:
                raise IdentityProviderError(f"Cannot serialize request body for {self.name}: {e}")
            request_headers['Content-Type'] = 'application/json'

        try:
            conn = self._get_connection()
            logger.debug(f"Making {method} request to {self.host}{target}")
            conn.request(method, target, request_body, request_headers)

            response = conn.getresponse()
            response_data = response.read().decode('utf-8')
            response_headers = {
                'link': response.getheader('link') or '',
                'content-type': response.getheader('content-type') or ''
            }
        except (ConnectionError, OSError) as e:
            self.close_connection()
            raise IdentityProviderError(f"Connection error to {self.name}: {e}")

        logger.debug(f"Response status: {response.status} {response.reason}")

        if response.status in (401, 403):
            raise IdentityProviderAuthError(
                f"Authentication failed for {self.name}: HTTP {response.status}", response.status
            )
        if response.status >= 300:
            raise IdentityProviderError(
                f"HTTP {response.status} {response.reason}: {self._error_summary(response_data)}",
                response.status
            )

        try:
            data = json.loads(response_data) if response_data else {}
        except json.JSONDecodeError as e:
            raise IdentityProviderError(f"Invalid JSON response from {self.name}: {e}")

        return data, response_headers

    def request(self, method: str, path: str, body: Optional[Dict] = None,
                headers: Optional[Dict] = None) -> Any:
        """Make an HTTP request and return only the parsed body."""
        data, _ = self.request_with_headers(method, path, body, headers)
        return data

    @staticmethod
    def _error_summary(response_data: str) -> str:
        """Pull errorSummary out of a provider error body when there is one."""
        try:
            payload = json.loads(response_data)
        except ValueError:
            return response_data[:200]
        if isinstance(payload, dict) and payload.get('errorSummary'):
            return payload['errorSummary']
        return response_data[:200]

    def close_connection(self):
        """Close HTTP connection."""
        if self.connection:
            try:
                self.connection.close()
            except Exception as e:
                logger.warning(f"Error closing connection for {self.name}: {e}")
            finally:
                self.connection = None

    @abstractmethod
    def iter_users(self, limit: int) -> Iterator[Any]:
        """
        Lazily yield every user across all pages.

        Args:
            limit: Page size bound
        """
        pass

    @abstractmethod
    def update_employee_number(self, user_id: str, employee_number: str) -> bool:
        """
        Write the employee number into a user's profile.

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    def get_current_user(self) -> Dict[str, Any]:
        """Return the user owning the API token (connectivity check)."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_connection()
