#!/usr/bin/env python3
"""Seed weekly opening hours, the 2025 holidays and a starter catalogue."""
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from salonbook import create_app
from salonbook.extensions import db
from salonbook.models import BusinessHours, Holiday, Service, SubscriptionPlan

# weekday (0=Sunday): intervals in minutes of the day
WEEKLY_HOURS = {
    0: [],
    1: [{"start": 540, "end": 720}, {"start": 780, "end": 1080}],
    2: [{"start": 540, "end": 720}, {"start": 780, "end": 1080}],
    3: [{"start": 540, "end": 720}, {"start": 780, "end": 1080}],
    4: [{"start": 540, "end": 720}, {"start": 780, "end": 1080}],
    5: [{"start": 540, "end": 720}, {"start": 780, "end": 1080}],
    6: [{"start": 540, "end": 780}],
}

HOLIDAYS_2025 = [
    ("2025-01-01", "Ano Novo", "national"),
    ("2025-02-24", "Carnaval", "national"),
    ("2025-02-25", "Carnaval", "national"),
    ("2025-04-18", "Sexta-feira Santa", "national"),
    ("2025-04-21", "Tiradentes", "national"),
    ("2025-05-01", "Dia do Trabalho", "national"),
    ("2025-06-19", "Corpus Christi", "national"),
    ("2025-09-07", "Independência do Brasil", "national"),
    ("2025-10-12", "Nossa Senhora Aparecida", "national"),
    ("2025-11-02", "Finados", "national"),
    ("2025-11-15", "Proclamação da República", "national"),
    ("2025-11-20", "Consciência Negra", "national"),
    ("2025-12-25", "Natal", "national"),
    ("2025-01-25", "Aniversário de São Paulo", "regional"),
    ("2025-07-09", "Revolução Constitucionalista", "regional"),
]

SERVICES = [
    {"name": "Limpeza de Pele", "category": "facial", "price_cents": 15000, "duration_minutes": 60},
    {"name": "Massagem Relaxante", "category": "massage", "price_cents": 12000, "duration_minutes": 60},
    {"name": "Drenagem Linfática", "category": "body", "price_cents": 13000, "duration_minutes": 60},
    {"name": "Peeling Químico", "category": "facial", "price_cents": 22000, "duration_minutes": 90,
     "plan_coverable": False},
]


def seed_schedule():
    app = create_app()

    with app.app_context():
        for weekday, intervals in WEEKLY_HOURS.items():
            row = db.session.get(BusinessHours, weekday) or BusinessHours(weekday=weekday)
            row.is_open = bool(intervals)
            row.intervals = intervals
            db.session.add(row)
        print(f"Saved opening hours for {len(WEEKLY_HOURS)} weekdays")

        added = 0
        for raw_date, name, scope in HOLIDAYS_2025:
            day = date.fromisoformat(raw_date)
            if Holiday.query.filter_by(holiday_date=day).first():
                continue
            db.session.add(Holiday(holiday_date=day, name=name, scope=scope))
            added += 1
        print(f"Added {added} holidays")

        if not Service.query.first():
            services = [Service(**data) for data in SERVICES]
            db.session.add_all(services)
            db.session.add(SubscriptionPlan(
                name="Essencial",
                tier="BRONZE",
                price_cents=19900,
                max_treatments_per_month=4,
                max_treatments_per_week=1,
                max_facial_per_month=2,
                covers_all_services=True,
            ))
            print(f"Added {len(services)} services and the Essencial plan")

        db.session.commit()


if __name__ == "__main__":
    seed_schedule()
