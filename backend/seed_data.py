"""Seed database with demo data."""
from maintenance_core.database import Base, SessionLocal, engine
from maintenance_core.models import Company, User, WorkOrder
from maintenance_core.auth import get_password_hash
from datetime import datetime, timedelta, timezone
import uuid

def seed():
    """Seed database with demo data."""
    # Local SQLite convenience; managed databases go through `alembic upgrade head`.
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        if db.query(Company).filter(Company.code == "DEMO").first():
            print("Demo company already exists, nothing to do.")
            return

        company = Company(
            id=uuid.UUID('00000000-0000-0000-0000-000000000001'),
            name="Demo Plant",
            code="DEMO"
        )
        db.add(company)
        db.flush()

        users_data = [
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000101'),
                'username': 'admin',
                'password': 'admin123',
                'name': 'Plant Administrator',
                'initials': 'PA',
                'role': 'admin'
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000102'),
                'username': 'manager',
                'password': 'manager123',
                'name': 'Maria Lopez',
                'initials': 'ML',
                'role': 'manager'
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000103'),
                'username': 'tech',
                'password': 'tech123',
                'name': 'Sam Carter',
                'initials': 'SC',
                'role': 'tech'
            },
        ]

        users = []
        for data in users_data:
            password = data.pop('password')
            user = User(
                company_id=company.id,
                password_hash=get_password_hash(password),
                **data
            )
            db.add(user)
            users.append(user)
        db.flush()

        manager, tech = users[1], users[2]
        now = datetime.now(timezone.utc)
        work_orders_data = [
            {
                'title': 'Replace conveyor belt on line 2',
                'description': 'Belt is frayed along the left edge.',
                'equipment_id': 'CONV-02',
                'priority': 'high',
                'type': 'corrective',
                'status': 'open',
                'assigned_to_id': tech.id,
                'created_by_id': manager.id,
                'due_date': now + timedelta(days=2),
            },
            {
                'title': 'Quarterly compressor inspection',
                'equipment_id': 'COMP-01',
                'priority': 'medium',
                'type': 'inspection',
                'status': 'open',
                'assigned_to_id': tech.id,
                'created_by_id': manager.id,
                'due_date': now + timedelta(days=14),
            },
            {
                'title': 'Lubricate press bearings',
                'equipment_id': 'PRESS-04',
                'priority': 'low',
                'type': 'preventive',
                'status': 'pending_approval',
                'assigned_to_id': tech.id,
                'created_by_id': tech.id,
                'submitted_by_id': tech.id,
            },
            {
                'title': 'Check for oil leak under lathe',
                'priority': 'medium',
                'type': 'corrective',
                'status': 'draft',
                'assigned_to_id': tech.id,
                'created_by_id': tech.id,
            },
        ]

        for number, wo_data in enumerate(work_orders_data, start=1):
            db.add(WorkOrder(company_id=company.id, work_order_number=number, **wo_data))

        db.commit()
        print("✅ Database seeded successfully!")
        print("\nDemo users:")
        print("  admin/admin123 (Administrator)")
        print("  manager/manager123 (Manager)")
        print("  tech/tech123 (Technician)")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
