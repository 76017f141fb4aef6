"""
Main orchestrator for Employee Number Sync.

Runs one pass: list identity provider users, select the ones missing an
employee number, fill them in from the directory and print a summary.
"""

import sys
import json
import logging
import argparse
from datetime import datetime
from typing import Dict, Any, Optional

from employee_sync.config import load_settings, ConfigurationError, SyncSettings
from employee_sync.logging_setup import setup_logging
from employee_sync.ldap_client import LDAPClient, LDAPConnectionError
from employee_sync.idp.base import IdentityProviderError
from employee_sync.idp.okta import OktaUsersAPI
from employee_sync.models import ReconcileResult
from employee_sync.reconcile import Reconciler, select_candidates, format_summary

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNHEALTHY = 1
EXIT_CONFIG_ERROR = 2
EXIT_LDAP_ERROR = 3
EXIT_FATAL = 4


class SyncOrchestrator:
    """
    Coordinates a single employee number backfill run.

    Configuration, directory bind and user listing failures abort the run;
    per-user failures are recorded in the result and do not.
    """

    def __init__(self, config_path: Optional[str] = None,
                 overrides: Optional[Dict[str, Any]] = None, out=None):
        """
        Initialize sync orchestrator.

        Args:
            config_path: Path to configuration file
            overrides: Dotted-key configuration overrides from the command line
            out: Stream the summary is printed to (stdout by default)
        """
        self.config_path = config_path
        self.overrides = overrides or {}
        self.out = out or sys.stdout
        self.settings: Optional[SyncSettings] = None
        self.ldap_client: Optional[LDAPClient] = None
        self.provider: Optional[OktaUsersAPI] = None
        self.result: Optional[ReconcileResult] = None
        self.stats = {
            'start_time': None,
            'end_time': None,
            'runtime_seconds': 0
        }

    def run(self) -> int:
        """
        Run the complete reconciliation.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        try:
            self.stats['start_time'] = datetime.now()

            self._load_configuration()
            setup_logging(self.settings.logging_config)

            logger.info("Starting employee number sync"
                        + (" (dry run)" if self.settings.dry_run else ""))

            self._connect_ldap()
            self.provider = OktaUsersAPI(self.settings.idp_config)

            candidates = select_candidates(
                self.provider.iter_users(self.settings.page_size),
                self.settings.exclude_email_pattern
            )

            reconciler = Reconciler(
                self.ldap_client,
                self.provider,
                source_attribute=self.settings.source_attribute,
                search_base=self.settings.search_base,
                dry_run=self.settings.dry_run
            )
            self.result = reconciler.reconcile(candidates)

            self.stats['end_time'] = datetime.now()
            self.stats['runtime_seconds'] = (
                self.stats['end_time'] - self.stats['start_time']
            ).total_seconds()

            self._report()
            return EXIT_OK

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return EXIT_CONFIG_ERROR
        except LDAPConnectionError as e:
            logger.error(f"LDAP connection error: {e}")
            return EXIT_LDAP_ERROR
        except IdentityProviderError as e:
            logger.error(f"Identity provider error, run aborted: {e}")
            return EXIT_FATAL
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return EXIT_FATAL
        finally:
            self._cleanup()

    def _load_configuration(self):
        """Load and validate configuration."""
        try:
            self.settings = load_settings(self.config_path, self.overrides)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def _connect_ldap(self):
        """Bind to the directory."""
        self.ldap_client = LDAPClient(self.settings.ldap_config)
        try:
            self.ldap_client.connect()
        except LDAPConnectionError:
            self.ldap_client = None
            raise

    def _report(self):
        """Log failure details and print the summary."""
        result = self.result

        for outcome in result.failed:
            logger.warning(f"Unresolved: {outcome.record.label} ({outcome.reason}): {outcome.error}")

        summary = format_summary(result.candidates, len(result.not_found), len(result.failed))
        for line in summary.splitlines():
            logger.info(line)
        logger.info(f"Total runtime: {self.stats['runtime_seconds']:.2f} seconds")

        print(summary, file=self.out)

    def health_check(self) -> Dict[str, Any]:
        """
        Check configuration, directory bind and provider token.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except ConfigurationError as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        try:
            with LDAPClient(self.settings.ldap_config) as test_client:
                reachable = test_client.test_connection()
            if reachable:
                health_status['checks']['ldap'] = {
                    'status': 'pass',
                    'message': 'LDAP bind and search base read successful'
                }
            else:
                health_status['checks']['ldap'] = {
                    'status': 'fail',
                    'message': f'LDAP search base not reachable: {self.settings.search_base}'
                }
                health_status['status'] = 'unhealthy'
        except Exception as e:
            health_status['checks']['ldap'] = {
                'status': 'fail',
                'message': f'LDAP connection failed: {e}'
            }
            health_status['status'] = 'unhealthy'

        try:
            with OktaUsersAPI(self.settings.idp_config) as provider:
                me = provider.get_current_user()
            login = (me.get('profile') or {}).get('login', 'unknown') if isinstance(me, dict) else 'unknown'
            health_status['checks']['identity_provider'] = {
                'status': 'pass',
                'message': f'API token accepted (user {login})'
            }
        except Exception as e:
            health_status['checks']['identity_provider'] = {
                'status': 'fail',
                'message': f'Identity provider check failed: {e}'
            }
            health_status['status'] = 'unhealthy'

        return health_status

    def _cleanup(self):
        """Clean up resources."""
        if self.provider:
            self.provider.close_connection()
        if self.ldap_client:
            self.ldap_client.disconnect()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Backfill identity provider employee numbers from the directory'
    )
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--page-size', type=int, help='Users per page (1-1000, default 200)')
    parser.add_argument('--exclude-pattern', help='Email glob to skip (case-insensitive)')
    parser.add_argument('--attribute', help='Directory attribute to copy (default employeeID)')
    parser.add_argument('--search-base', help='Directory search root')
    parser.add_argument('--dry-run', action='store_true', default=None,
                        help='Look up values but do not update the identity provider')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of sync')
    return parser


def main(argv=None):
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)

    overrides = {
        'idp.page_size': args.page_size,
        'sync.exclude_email_pattern': args.exclude_pattern,
        'ldap.source_attribute': args.attribute,
        'ldap.search_base': args.search_base,
        'sync.dry_run': args.dry_run,
    }

    orchestrator = SyncOrchestrator(config_path=args.config, overrides=overrides)

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(EXIT_OK if health_status['status'] == 'healthy' else EXIT_UNHEALTHY)

    sys.exit(orchestrator.run())


if __name__ == "__main__":
    main()
