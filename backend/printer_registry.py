"""
Printer Registry
================
In-memory set of configured bill printers with their enablement, default
and status flags. The registry is the working copy for the life of the
process; `load_registry` / `save_printer` mirror configuration changes to
the `printers` table.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
import logging
import uuid

from sqlalchemy.orm import Session

from exceptions import PrinterNotFoundError, ValidationError
from models import (
    Printer, PrinterType, PrinterConnectionType, PaperSize, PrinterStatusEnum
)

logger = logging.getLogger("printer_registry")


@dataclass
class PrinterConfig:
    """One configured output device"""
    id: str
    name: str
    type: PrinterType = PrinterType.THERMAL
    connection: PrinterConnectionType = PrinterConnectionType.USB
    paper_size: PaperSize = PaperSize.MM80
    is_default: bool = False
    is_enabled: bool = True
    status: PrinterStatusEnum = PrinterStatusEnum.OFFLINE
    ip_address: Optional[str] = None
    port: Optional[int] = None
    last_used: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "connection": self.connection.value,
            "ip_address": self.ip_address,
            "port": self.port,
            "paper_size": self.paper_size.value,
            "is_default": self.is_default,
            "is_enabled": self.is_enabled,
            "status": self.status.value,
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def generate_printer_id() -> str:
    """Generate unique printer ID"""
    return f"printer_{uuid.uuid4().hex[:8]}"


def validate_connection(connection: PrinterConnectionType, ip_address: Optional[str], port: Optional[int]):
    """Network printers must be reachable at an address"""
    if connection == PrinterConnectionType.NETWORK and (not ip_address or not port):
        raise ValidationError("Network printers require IP address and port")


class PrinterRegistry:
    """Configured printers, in insertion order"""

    def __init__(self, printers: Optional[List[PrinterConfig]] = None):
        self._printers: Dict[str, PrinterConfig] = {}
        for printer in printers or []:
            self._printers[printer.id] = printer

    def __len__(self):
        return len(self._printers)

    def __contains__(self, printer_id):
        return printer_id in self._printers

    def list_printers(self) -> List[PrinterConfig]:
        return list(self._printers.values())

    def find(self, printer_id: Optional[str]) -> Optional[PrinterConfig]:
        if printer_id is None:
            return None
        return self._printers.get(printer_id)

    def get_printer(self, printer_id: str) -> PrinterConfig:
        printer = self._printers.get(printer_id)
        if printer is None:
            raise PrinterNotFoundError(printer_id)
        return printer

    def default_printer(self) -> Optional[PrinterConfig]:
        for printer in self._printers.values():
            if printer.is_default:
                return printer
        return None

    def add_printer(self, printer: PrinterConfig) -> PrinterConfig:
        if printer.id in self._printers:
            raise ValidationError(f"Printer {printer.id} already exists")
        if not printer.name:
            raise ValidationError("Printer name is required")
        validate_connection(printer.connection, printer.ip_address, printer.port)

        if printer.connection != PrinterConnectionType.NETWORK:
            printer.ip_address = None
            printer.port = None

        requested_default = printer.is_default
        printer.is_default = False
        self._printers[printer.id] = printer
        if requested_default:
            self.set_default(printer.id)

        logger.info(f"Printer {printer.id} added: {printer.name} ({printer.type.value}, {printer.connection.value})")
        return printer

    def update_printer(self, printer_id: str, **fields) -> PrinterConfig:
        """Apply admin edits; `is_default` is routed through set_default"""
        printer = self.get_printer(printer_id)

        connection = fields.get("connection", printer.connection)
        ip_address = fields.get("ip_address", printer.ip_address)
        port = fields.get("port", printer.port)
        validate_connection(connection, ip_address, port)

        make_default = fields.pop("is_default", None)
        for key, value in fields.items():
            if not hasattr(printer, key) or key in ("id", "created_at"):
                raise ValidationError(f"Unknown printer field: {key}")
            setattr(printer, key, value)

        if printer.connection != PrinterConnectionType.NETWORK:
            printer.ip_address = None
            printer.port = None

        if make_default:
            self.set_default(printer_id)
        elif make_default is False and printer.is_default:
            self._hand_over_default(printer)

        printer.updated_at = datetime.now()
        logger.info(f"Printer {printer_id} updated")
        return printer

    def set_enabled(self, printer_id: str, enabled: bool) -> PrinterConfig:
        """Jobs already queued against the printer are left alone"""
        printer = self.get_printer(printer_id)
        printer.is_enabled = enabled
        printer.updated_at = datetime.now()
        logger.info(f"Printer {printer.name} has been {'enabled' if enabled else 'disabled'}")
        return printer

    def set_default(self, printer_id: str) -> bool:
        """Make one printer the default; unknown ids leave the registry untouched"""
        if printer_id not in self._printers:
            logger.warning(f"Cannot set default: printer {printer_id} not found")
            return False

        for printer in self._printers.values():
            printer.is_default = printer.id == printer_id

        logger.info(f"{self._printers[printer_id].name} is now the default printer")
        return True

    def set_status(self, printer_id: str, status: PrinterStatusEnum) -> PrinterConfig:
        printer = self.get_printer(printer_id)
        if printer.status != status:
            logger.info(f"Printer {printer_id} status: {printer.status.value} -> {status.value}")
        printer.status = status
        return printer

    def record_test_result(self, printer_id: str, success: bool) -> PrinterConfig:
        printer = self.get_printer(printer_id)
        if success:
            printer.status = PrinterStatusEnum.ONLINE
            printer.last_used = datetime.now()
            logger.info(f"Printer test successful: {printer.name}")
        else:
            printer.status = PrinterStatusEnum.ERROR
            logger.warning(f"Printer test failed: {printer.name}")
        return printer

    def remove_printer(self, printer_id: str) -> PrinterConfig:
        """Remove a printer, handing the default flag to the first enabled survivor"""
        printer = self._printers.pop(printer_id, None)
        if printer is None:
            raise PrinterNotFoundError(printer_id)

        if printer.is_default:
            printer.is_default = False
            self._hand_over_default(printer)

        logger.info(f"Printer {printer_id} removed")
        return printer

    def _hand_over_default(self, printer: PrinterConfig):
        """Move the default flag off `printer` to the first other enabled printer"""
        replacement = next(
            (p for p in self._printers.values() if p.is_enabled and p.id != printer.id), None
        )
        if replacement:
            self.set_default(replacement.id)
        elif printer.id in self._printers:
            logger.warning(f"No enabled printer to take over as default, {printer.name} stays default")
        else:
            logger.warning("No enabled printer left to take over as default")


# ==================== Persistence ====================

def printer_from_record(record: Printer) -> PrinterConfig:
    return PrinterConfig(
        id=record.printer_id,
        name=record.printer_name,
        type=record.type or PrinterType.THERMAL,
        connection=record.connection_type or PrinterConnectionType.USB,
        paper_size=record.paper_size or PaperSize.MM80,
        is_default=bool(record.is_default),
        is_enabled=bool(record.is_enabled),
        status=record.status or PrinterStatusEnum.OFFLINE,
        ip_address=record.ip_address,
        port=record.port,
        last_used=record.last_used,
        created_at=record.created_at or datetime.now(),
        updated_at=record.updated_at or datetime.now(),
    )


def load_registry(db: Session) -> PrinterRegistry:
    """Build the working registry from stored configuration"""
    records = db.query(Printer).order_by(Printer.created_at, Printer.printer_id).all()
    registry = PrinterRegistry([printer_from_record(r) for r in records])

    defaults = [p for p in registry.list_printers() if p.is_default]
    if len(defaults) > 1:
        # Keep the first; the rest were left over from older writes
        registry.set_default(defaults[0].id)

    logger.info(f"Loaded {len(registry)} printers from database")
    return registry


def save_printer(db: Session, printer: PrinterConfig):
    """Upsert one printer's configuration"""
    record = db.query(Printer).filter(Printer.printer_id == printer.id).first()
    if record is None:
        record = Printer(printer_id=printer.id, created_at=printer.created_at)
        db.add(record)

    record.printer_name = printer.name
    record.type = printer.type
    record.connection_type = printer.connection
    record.ip_address = printer.ip_address
    record.port = printer.port
    record.paper_size = printer.paper_size
    record.is_default = printer.is_default
    record.is_enabled = printer.is_enabled
    record.status = printer.status
    record.last_used = printer.last_used
    record.updated_at = printer.updated_at
    db.commit()


def save_registry(db: Session, registry: PrinterRegistry):
    """Persist every printer; default flags move between rows together"""
    for printer in registry.list_printers():
        save_printer(db, printer)


def delete_printer_record(db: Session, printer_id: str) -> bool:
    deleted = db.query(Printer).filter(Printer.printer_id == printer_id).delete()
    db.commit()
    return bool(deleted)
