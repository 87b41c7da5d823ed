# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/errors.py


class BootstrapError(RuntimeError):
    """Base class for every failure raised during a bootstrap run."""


# ---------------------------------------------------------------------
# Registry / plan
# ---------------------------------------------------------------------
class ConfigurationError(BootstrapError):
    """The node registry is unusable. Raised before any node starts."""


class UnknownDependencyError(ConfigurationError):
    pass


class CycleError(ConfigurationError):
    pass


class InvalidRegistryError(ConfigurationError):
    """Names, roles or seed ancestry violate the registry rules."""


# ---------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------
class CertificateError(BootstrapError):
    """Certificate material for a node is unreadable or unusable."""


class MissingCertificateError(CertificateError):
    pass


class CertificateMismatchError(CertificateError):
    """The bundle does not belong to the node it was resolved for."""


# ---------------------------------------------------------------------
# Process boundary
# ---------------------------------------------------------------------
class LaunchError(BootstrapError):
    """The node process could not be handed its bundle or started."""


# ---------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------
class ProbeError(BootstrapError):
    pass


class ProbeTimeoutError(ProbeError):
    def __init__(self, node: str, timeout: float, attempts: int):
        super().__init__(
            f"node '{node}' did not report healthy within {timeout:g}s ({attempts} polls)"
        )
        self.node = node
        self.timeout = timeout
        self.attempts = attempts


class HealthCheckError(ProbeError):
    """Non-retryable health check failure (malformed response, bad TLS, ...)."""


# ---------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------
class JoinError(BootstrapError):
    pass


class NoSeedsAvailableError(JoinError):
    pass


class AuthenticationError(JoinError):
    """The seed rejected the joiner's certificate. Never retried."""


class JoinTransportError(JoinError):
    """Connection refused, timeout or server-side error. Retryable."""


class JoinFailedError(JoinError):
    pass


class CancellationError(BootstrapError):
    """The run was cancelled from outside."""
