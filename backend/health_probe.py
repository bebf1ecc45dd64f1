"""
Printer health probes and the periodic status monitor
"""

from typing import Dict, Optional
import logging
import random

import httpx

from models import PrinterStatusEnum
from print_queue import Config
from printer_registry import PrinterConfig, PrinterRegistry

logger = logging.getLogger("printer_health")


class PrinterHealthProbe:
    """Reports the observed status of a printer"""

    async def check(self, printer: PrinterConfig) -> PrinterStatusEnum:
        raise NotImplementedError

    async def test_connection(self, printer: PrinterConfig) -> bool:
        raise NotImplementedError


class StaticHealthProbe(PrinterHealthProbe):
    """Deterministic probe: statuses never drift, tests always give the same answer"""

    def __init__(self, reachable: bool = True):
        self.reachable = reachable

    async def check(self, printer):
        return printer.status

    async def test_connection(self, printer):
        return self.reachable


class RandomHealthProbe(PrinterHealthProbe):
    """
    Demo probe: each check has a small chance of moving the printer to a
    random status, and connection tests succeed most of the time.
    """

    STATUSES = [PrinterStatusEnum.ONLINE, PrinterStatusEnum.OFFLINE, PrinterStatusEnum.ERROR]

    def __init__(self, change_probability: float = Config.STATUS_CHANGE_PROBABILITY,
                 success_rate: float = Config.TEST_SUCCESS_RATE, rng: Optional[random.Random] = None):
        self.change_probability = change_probability
        self.success_rate = success_rate
        self.rng = rng or random.Random()

    async def check(self, printer):
        if self.rng.random() < self.change_probability:
            return self.rng.choice(self.STATUSES)
        return printer.status

    async def test_connection(self, printer):
        return self.rng.random() < self.success_rate


class HttpHealthProbe(PrinterHealthProbe):
    """Asks a printer agent for live status over HTTP"""

    STATUS_MAP = {
        "online": PrinterStatusEnum.ONLINE,
        "idle": PrinterStatusEnum.ONLINE,
        "busy": PrinterStatusEnum.ONLINE,
        "warming_up": PrinterStatusEnum.ONLINE,
        "offline": PrinterStatusEnum.OFFLINE,
        "maintenance": PrinterStatusEnum.OFFLINE,
        "error": PrinterStatusEnum.ERROR,
        "paper_jam": PrinterStatusEnum.ERROR,
        "out_of_paper": PrinterStatusEnum.ERROR,
    }

    def __init__(self, agent_url: str = Config.PRINTER_AGENT_URL, timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.agent_url = agent_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _fetch_status(self, printer) -> Optional[str]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(f"{self.agent_url}/printers/{printer.id}")
            response.raise_for_status()
            return response.json().get("status")

    async def check(self, printer):
        try:
            raw_status = await self._fetch_status(printer)
        except httpx.HTTPStatusError as e:
            logger.warning(f"Agent returned {e.response.status_code} for printer {printer.id}")
            return PrinterStatusEnum.ERROR
        except httpx.HTTPError as e:
            logger.warning(f"Printer agent unreachable for {printer.id}: {e}")
            return PrinterStatusEnum.OFFLINE

        return self.STATUS_MAP.get(str(raw_status).lower(), PrinterStatusEnum.ERROR)

    async def test_connection(self, printer):
        return await self.check(printer) == PrinterStatusEnum.ONLINE


def build_probe(kind: str = Config.PRINTER_PROBE) -> PrinterHealthProbe:
    if kind == "random":
        return RandomHealthProbe()
    if kind == "http":
        return HttpHealthProbe()
    if kind != "static":
        logger.warning(f"Unknown probe '{kind}', falling back to static")
    return StaticHealthProbe()


class StatusMonitor:
    """Periodic status refresh for enabled printers"""

    def __init__(self, registry: PrinterRegistry, probe: Optional[PrinterHealthProbe] = None):
        self.registry = registry
        self.probe = probe or StaticHealthProbe()

    async def check_printers(self) -> Dict[str, PrinterStatusEnum]:
        """Apply probe results; returns {printer_id: new_status} for changed printers"""
        changes = {}
        for printer in self.registry.list_printers():
            if not printer.is_enabled:
                continue
            status = await self.probe.check(printer)
            if printer.id not in self.registry:
                continue
            if status != printer.status:
                self.registry.set_status(printer.id, status)
                changes[printer.id] = status
        return changes

    async def test_printer(self, printer_id: str) -> PrinterConfig:
        """Connection test; records the result on the registry"""
        printer = self.registry.get_printer(printer_id)
        success = await self.probe.test_connection(printer)
        return self.registry.record_test_result(printer_id, success)
