"""Shared pytest fixtures: an in-memory database seeded with one school."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from bursar.core.db import get_db, install_sqlite_pragmas
from bursar.models import Base, School, Section, SchoolClass, Student, FeeType


def seed_school(db, code="PAL", name="Complexe Scolaire Palmier"):
    """
    A school with two sections:
      primary:   P1 (alice, bob), P2 (dave, archived)
      secondary: S1 (carol)
    plus eve, an active student not yet placed in a class.
    """
    school = School(code=code, name=name, currency="CDF")
    db.add(school)
    db.flush()

    primary = Section(school_id=school.id, name="Primary", code="PRI")
    secondary = Section(school_id=school.id, name="Secondary", code="SEC")
    db.add_all([primary, secondary])
    db.flush()

    p1 = SchoolClass(school_id=school.id, section_id=primary.id, name="P1")
    p2 = SchoolClass(school_id=school.id, section_id=primary.id, name="P2")
    s1 = SchoolClass(school_id=school.id, section_id=secondary.id, name="S1")
    db.add_all([p1, p2, s1])
    db.flush()

    def student(number, first, class_id, status="ACTIVE"):
        row = Student(
            school_id=school.id,
            student_number=number,
            first_name=first,
            last_name="Test",
            class_id=class_id,
            status=status,
        )
        db.add(row)
        return row

    alice = student("S001", "Alice", p1.id)
    bob = student("S002", "Bob", p1.id)
    carol = student("S003", "Carol", s1.id)
    dave = student("S004", "Dave", p2.id, status="ARCHIVED")
    eve = student("S005", "Eve", None)
    db.commit()

    return SimpleNamespace(
        school=school,
        primary=primary,
        secondary=secondary,
        p1=p1,
        p2=p2,
        s1=s1,
        alice=alice,
        bob=bob,
        carol=carol,
        dave=dave,
        eve=eve,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    install_sqlite_pragmas(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """A SQLite file shared by several connections, as in a default deployment"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'bursar.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    install_sqlite_pragmas(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_seeded(file_engine):
    with Session(bind=file_engine, expire_on_commit=False) as session:
        return seed_school(session)


@pytest.fixture
def db(engine):
    session = Session(bind=engine, autoflush=False, expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    return seed_school(db)


@pytest.fixture
def make_school(db):
    def _make(code, name="Second school"):
        return seed_school(db, code=code, name=name)

    return _make


@pytest.fixture
def make_fee_type(db, seeded):
    def _make(name="Tuition", amount="50000.00", is_active=True):
        fee_type = FeeType(
            school_id=seeded.school.id,
            name=name,
            amount=Decimal(amount),
            is_active=is_active,
        )
        db.add(fee_type)
        db.commit()
        return fee_type

    return _make


@pytest.fixture
def client(db, seeded):
    from bursar.main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers(seeded):
    return {"X-School-ID": str(seeded.school.id), "X-User-ID": "bursar-1"}
