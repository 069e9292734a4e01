"""Observability setup.

Configures Logfire for tracing and logging. Spans and logs are sent
only when a Logfire token is present; console output is opt-in.
"""

import logfire


def configure(service_name: str = "frostty_bridge", debug: bool = False) -> None:
    """Configure observability.

    Args:
        service_name: Name to identify this service in traces.
        debug: If True, also log to console. Default False (quiet mode).
    """
    logfire.configure(
        service_name=service_name,
        send_to_logfire="if-token-present",
        console=None if debug else False,
    )
