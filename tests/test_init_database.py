from init_database import DEFAULT_PRINTERS, describe_printer, seed_default_printers
from models import Printer, PrinterStatusEnum
from printer_registry import load_registry


def test_seeds_default_printers_once(db_session):
    assert seed_default_printers(db_session) == len(DEFAULT_PRINTERS)
    assert seed_default_printers(db_session) == 0
    assert db_session.query(Printer).count() == 3


def test_seeded_registry_has_single_online_default(db_session):
    seed_default_printers(db_session)

    registry = load_registry(db_session)

    assert registry.default_printer().name == "Main Receipt Printer"
    assert {p.status for p in registry.list_printers()} == {PrinterStatusEnum.ONLINE}
    assert registry.get_printer("2").port == 9100


def test_describe_printer_shows_address_and_flags(db_session):
    seed_default_printers(db_session)
    kitchen = db_session.query(Printer).filter(Printer.printer_id == "2").one()
    kitchen.is_enabled = False

    line = describe_printer(kitchen)

    assert "Kitchen Printer" in line
    assert "@ 192.168.1.100:9100" in line
    assert "58mm" in line
    assert line.endswith("online [disabled]")
