"""
Printer configuration bootstrap

    python init_database.py            create tables, seed default printers
    python init_database.py --list     show configured printers
    python init_database.py --reset    drop printer configuration first
"""

import sys
from sqlalchemy import text

from database import SessionLocal, drop_all_tables, init_db
from models import Printer, PrinterStatusEnum, PrinterType, PrinterConnectionType, PaperSize

DEFAULT_PRINTERS = [
    {
        "printer_id": "1",
        "printer_name": "Main Receipt Printer",
        "type": PrinterType.THERMAL,
        "connection_type": PrinterConnectionType.USB,
        "paper_size": PaperSize.MM80,
        "is_default": True,
        "is_enabled": True,
        "status": PrinterStatusEnum.ONLINE,
    },
    {
        "printer_id": "2",
        "printer_name": "Kitchen Printer",
        "type": PrinterType.THERMAL,
        "connection_type": PrinterConnectionType.NETWORK,
        "ip_address": "192.168.1.100",
        "port": 9100,
        "paper_size": PaperSize.MM58,
        "is_default": False,
        "is_enabled": True,
        "status": PrinterStatusEnum.ONLINE,
    },
    {
        "printer_id": "3",
        "printer_name": "Invoice Printer",
        "type": PrinterType.LASER,
        "connection_type": PrinterConnectionType.NETWORK,
        "ip_address": "192.168.1.101",
        "port": 9100,
        "paper_size": PaperSize.A4,
        "is_default": False,
        "is_enabled": True,
        "status": PrinterStatusEnum.ONLINE,
    },
]


def seed_default_printers(db):
    """Insert the default printers into an empty table; returns how many were added"""
    if db.query(Printer).count() > 0:
        return 0

    for row in DEFAULT_PRINTERS:
        db.add(Printer(**row))
    db.commit()
    return len(DEFAULT_PRINTERS)


def describe_printer(printer: Printer) -> str:
    address = f" @ {printer.ip_address}:{printer.port}" if printer.ip_address else ""
    flags = []
    if printer.is_default:
        flags.append("default")
    if not printer.is_enabled:
        flags.append("disabled")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return (
        f"{printer.printer_id:>4}  {printer.printer_name} "
        f"({printer.type.value}, {printer.connection_type.value}{address}, "
        f"{printer.paper_size.value}) {printer.status.value}{suffix}"
    )


def list_printers():
    db = SessionLocal()
    try:
        printers = db.query(Printer).order_by(Printer.created_at, Printer.printer_id).all()
        if not printers:
            print("⚠️  No printers configured")
        for printer in printers:
            print(describe_printer(printer))
    finally:
        db.close()


def bootstrap():
    """Check the connection, create tables and seed an empty printer table"""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        print("✅ Database reachable")

        init_db()
        print("✅ Printer tables ready")

        added = seed_default_printers(db)
        if added:
            print(f"🌱 Seeded {added} default printers")
        else:
            print("ℹ️  Printers already configured, nothing seeded")
        return True
    except Exception as e:
        db.rollback()
        print(f"❌ Bootstrap failed: {e}")
        print("ℹ️  Check DATABASE_URL in .env")
        return False
    finally:
        db.close()


def confirm_reset():
    answer = input("Drop all printer configuration? Type 'RESET PRINTERS' to confirm: ")
    return answer == "RESET PRINTERS"


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv

    if "--list" in args:
        list_printers()
        return

    if "--reset" in args:
        if not confirm_reset():
            print("❌ Reset aborted")
            sys.exit(1)
        drop_all_tables()
        print("🗑️  Printer configuration dropped")

    if not bootstrap():
        sys.exit(1)

    print()
    list_printers()
    print()
    print("Start the service with: uvicorn backend:app --port 8000")


if __name__ == "__main__":
    main()
