from sqlalchemy.orm import Session
from app.db.init_db import init_db
from app.db.session import SessionLocal, engine
from app.models.plan import Plan

PLANS = [
    # Free tier: URL links only
    {"code": "explorer", "name": "Explorer", "description": "Protect a handful of links for free",
     "price_cents": 0, "currency": "USD", "links_quota": 5, "max_expiration_days": 7},

    # Paid tiers: file uploads allowed
    {"code": "creator", "name": "Creator", "description": "For regular sharing, with file uploads",
     "price_cents": 500, "currency": "USD", "links_quota": 50, "max_expiration_days": 90},

    {"code": "power", "name": "Power", "description": "Unlimited links and uploads",
     "price_cents": 1500, "currency": "USD", "links_quota": None, "max_expiration_days": None},
]

def upsert_plan(db: Session, data: dict) -> Plan:
    plan = db.query(Plan).filter(Plan.code == data["code"]).first()
    if plan:
        for k, v in data.items():
            setattr(plan, k, v)
        return plan

    plan = Plan(**data)
    db.add(plan)
    return plan

def main():
    init_db(engine)
    db = SessionLocal()
    try:
        for data in PLANS:
            upsert_plan(db, data)
        db.commit()
        print("Seeded plans:", [p["code"] for p in PLANS])
    finally:
        db.close()

if __name__ == "__main__":
    main()
