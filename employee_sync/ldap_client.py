"""
LDAP client for connecting to and querying the directory.

This module binds to LDAP/Active Directory and looks up a single attribute for
a user found by exact display name match.
"""

import logging
import ssl
from typing import Dict, Any, Optional
from ldap3 import Server, Connection, SUBTREE, Tls
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from employee_sync.logging_setup import security_logger

logger = logging.getLogger(__name__)


class LDAPConnectionError(Exception):
    """Raised when LDAP connection fails."""
    pass


class LDAPQueryError(Exception):
    """Raised when LDAP query fails."""
    pass


def build_display_name_filter(display_name: str, user_filter: str = '(objectClass=user)') -> str:
    """
    Build an exact-match filter on displayName.

    The display name is escaped so that filter metacharacters such as
    ``(``, ``)``, ``*`` and ``\\`` are matched literally.
    """
    return f"(&{user_filter}(displayName={escape_filter_chars(display_name)}))"


class LDAPClient:
    """
    LDAP client for display name lookups.

    Binds once per run and issues one search per candidate.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize LDAP client with configuration.

        Args:
            config: LDAP configuration dictionary
        """
        self.config = config
        self.server_url = config['server_url']
        self.bind_dn = config['bind_dn']
        self.bind_password = config['bind_password']
        self.search_base = config.get('search_base', '')
        self.user_filter = config.get('user_filter', '(objectClass=user)')

        # SSL/TLS configuration
        self.use_ssl = config.get('use_ssl', self.server_url.lower().startswith('ldaps://'))
        self.start_tls = config.get('start_tls', False)
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')

        # Connection settings
        self.connection_timeout = config.get('connection_timeout', 10)
        self.receive_timeout = config.get('receive_timeout', 10)

        self.server = None
        self.connection = None
        self._connected = False

    def connect(self) -> bool:
        """
        Open and bind the LDAP connection.

        Returns:
            True if connection successful

        Raises:
            LDAPConnectionError: If the server cannot be reached or the bind fails
        """
        try:
            self.server = Server(
                self.server_url,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                connect_timeout=self.connection_timeout
            )
            logger.debug(f"Created LDAP server object for {self.server_url} "
                         f"(SSL: {self.use_ssl}, StartTLS: {self.start_tls})")

            self.connection = Connection(
                self.server,
                user=self.bind_dn,
                password=self.bind_password,
                auto_bind=False,
                receive_timeout=self.receive_timeout
            )

            if not self.connection.open():
                raise LDAPConnectionError(f"Failed to open connection: {self.connection.result}")

            if self.start_tls and not self.use_ssl:
                if not self.connection.start_tls():
                    raise LDAPConnectionError(f"Failed to start TLS: {self.connection.result}")
                logger.debug("StartTLS negotiation successful")

            if not self.connection.bind():
                raise LDAPConnectionError(f"Bind failed: {self.connection.result}")

        except LDAPConnectionError:
            security_logger.log_authentication_attempt('ldap', self.bind_dn, False)
            self._reset_connection()
            raise
        except LDAPException as e:
            security_logger.log_authentication_attempt('ldap', self.bind_dn, False)
            self._reset_connection()
            raise LDAPConnectionError(f"Failed to connect to LDAP server {self.server_url}: {e}")

        self._connected = True
        security_logger.log_authentication_attempt('ldap', self.bind_dn, True)
        logger.info(f"Successfully connected and bound to LDAP server {self.server_url}")
        return True

    def _create_tls_config(self) -> Optional[Tls]:
        """
        Create TLS configuration for LDAP connection.

        Returns:
            Tls configuration object or None if not needed
        """
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {}

        if not self.verify_ssl:
            tls_config['validate'] = ssl.CERT_NONE
            logger.warning("SSL certificate verification disabled")
        else:
            tls_config['validate'] = ssl.CERT_REQUIRED

        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file
            logger.debug(f"Using CA certificate file: {self.ca_cert_file}")

        try:
            return Tls(**tls_config)
        except Exception as e:
            raise LDAPConnectionError(f"Failed to create TLS configuration: {e}")

    def _reset_connection(self):
        if self.connection:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logger.debug(f"Ignoring unbind error after failed connect: {e}")
        self.connection = None
        self._connected = False

    def disconnect(self):
        """Close LDAP connection."""
        if self.connection and self._connected:
            try:
                self.connection.unbind()
                logger.debug("LDAP connection closed")
            except Exception as e:
                logger.warning(f"Error closing LDAP connection: {e}")
            finally:
                self._connected = False
                self.connection = None

    def find_attribute_by_display_name(self, display_name: str, attribute: str,
                                       search_base: Optional[str] = None) -> Optional[str]:
        """
        Look up one attribute of the user whose displayName equals display_name.

        Args:
            display_name: Exact display name to match
            attribute: Attribute to read (e.g. employeeID)
            search_base: Search root; defaults to the configured one

        Returns:
            The attribute value, None when no entry matches, or an empty
            string when the entry has no value for the attribute

        Raises:
            LDAPQueryError: If the search itself fails
        """
        if not self._connected:
            raise LDAPQueryError("Not connected to LDAP server")
        if not display_name:
            return None

        search_filter = build_display_name_filter(display_name, self.user_filter)
        base = search_base or self.search_base
        logger.debug(f"Searching with filter: {search_filter} in base: {base}")

        try:
            success = self.connection.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=[attribute]
            )
        except LDAPException as e:
            raise LDAPQueryError(f"LDAP query failed for {display_name!r}: {e}")

        # noSuchObject and friends leave success False with an empty result set
        if not success and self.connection.result.get('result') not in (0, 32):
            raise LDAPQueryError(f"Search failed for {display_name!r}: {self.connection.result}")

        entries = self.connection.entries
        if not entries:
            logger.debug(f"No directory entry for {display_name!r}")
            return None

        if len(entries) > 1:
            logger.warning(f"Multiple directory entries for {display_name!r}, using first match")

        return self._attribute_value(entries[0], attribute)

    @staticmethod
    def _attribute_value(entry, attribute: str) -> str:
        """Return a single string value for the attribute, or '' if it has none."""
        # attribute names are case-insensitive; entry[...] resolves any casing
        if attribute.lower() not in (name.lower() for name in entry.entry_attributes):
            return ''
        value = entry[attribute].value
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None:
            return ''
        return str(value).strip()

    def test_connection(self) -> bool:
        """
        Test LDAP connection without throwing exceptions.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            if not self._connected:
                self.connect()
            return self.connection.search(
                search_base=self.search_base,
                search_filter='(objectClass=*)',
                search_scope='BASE',
                attributes=['objectClass'],
                size_limit=1
            )
        except (LDAPException, LDAPConnectionError) as e:
            logger.debug(f"Connection test failed: {e}")
            return False

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
