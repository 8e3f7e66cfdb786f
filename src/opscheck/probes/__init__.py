from opscheck.probes import command, logs, network, service, system  # noqa: F401  (registers handlers)
from opscheck.probes.base import HANDLERS, Measurement, ProbeContext, abandoned_probes, invoke_probe

__all__ = ["HANDLERS", "Measurement", "ProbeContext", "abandoned_probes", "invoke_probe"]
