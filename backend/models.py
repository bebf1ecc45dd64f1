"""
SQLAlchemy Database Models and shared enums for the bill printer service
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum
from datetime import datetime
from database import Base
import enum

# ==================== Enums ====================

class PrinterType(str, enum.Enum):
    THERMAL = "thermal"
    INKJET = "inkjet"
    LASER = "laser"
    DOT_MATRIX = "dot_matrix"

class PrinterConnectionType(str, enum.Enum):
    USB = "usb"
    NETWORK = "network"
    BLUETOOTH = "bluetooth"

class PaperSize(str, enum.Enum):
    MM58 = "58mm"
    MM80 = "80mm"
    A4 = "a4"
    LETTER = "letter"

class PrinterStatusEnum(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"

class PrintJobType(str, enum.Enum):
    RECEIPT = "receipt"
    INVOICE = "invoice"
    KITCHEN_ORDER = "kitchen_order"
    LABEL = "label"
    REPORT = "report"

class PrintPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

class PrintJobStatus(str, enum.Enum):
    PENDING = "pending"
    PRINTING = "printing"
    COMPLETED = "completed"
    FAILED = "failed"

# ==================== Models ====================

class Printer(Base):
    """
    Stored printer configuration. The in-memory registry is loaded from
    this table on startup and writes admin changes back to it.
    """
    __tablename__ = "printers"

    printer_id = Column(String(50), primary_key=True, index=True)
    printer_name = Column(String(255), nullable=False)
    type = Column(SQLEnum(PrinterType), default=PrinterType.THERMAL)
    connection_type = Column(SQLEnum(PrinterConnectionType), default=PrinterConnectionType.USB)
    ip_address = Column(String(64), nullable=True)
    port = Column(Integer, nullable=True)
    paper_size = Column(SQLEnum(PaperSize), default=PaperSize.MM80)
    is_default = Column(Boolean, default=False)
    is_enabled = Column(Boolean, default=True)
    status = Column(SQLEnum(PrinterStatusEnum), default=PrinterStatusEnum.OFFLINE)
    last_used = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Printer(id={self.printer_id}, name={self.printer_name}, default={self.is_default})>"
