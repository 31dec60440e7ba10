"""Create demo scheduling data (provider accounts and pending booking requests)."""

import asyncio
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import select

from app.db.session import AsyncSessionLocal
from app.models.scheduling import (
    AppointmentType,
    BookingRequest,
    BookingRequestStatus,
    BookingSource,
)
from app.models.user import User, UserRole

PROVIDERS = [
    ("dr.rao@clinicdesk.local", "Dr Anita Rao", UserRole.OPHTHALMOLOGIST, "Retina"),
    ("dr.mehta@clinicdesk.local", "Dr Vikram Mehta", UserRole.DOCTOR, "General"),
    ("s.iyer@clinicdesk.local", "Sunil Iyer", UserRole.OPTOMETRIST, "Optometry"),
]

STAFF = [
    ("frontdesk@clinicdesk.local", "Front Desk", UserRole.RECEPTIONIST, "Reception"),
]


async def create_scheduling_data():
    """Create provider accounts and a few pending booking requests."""
    async with AsyncSessionLocal() as session:
        for email, full_name, role, department in PROVIDERS + STAFF:
            result = await session.execute(select(User).where(User.email == email))
            if result.scalar_one_or_none():
                print(f"User {email} already exists, skipping...")
                continue
            session.add(
                User(
                    email=email,
                    full_name=full_name,
                    role=role,
                    department=department,
                    is_active=True,
                )
            )
            print(f"Created {role.value}: {email}")
        await session.flush()

        # Pin the first request to the ophthalmologist, leave the rest open
        result = await session.execute(
            select(User).where(User.email == PROVIDERS[0][0])
        )
        pinned_provider = result.scalar_one()

        result = await session.execute(
            select(BookingRequest)
            .where(BookingRequest.status == BookingRequestStatus.PENDING)
            .limit(1)
        )
        if result.scalar_one_or_none():
            print("Pending booking requests already exist, skipping...")
        else:
            tomorrow = datetime.now(timezone.utc).date() + timedelta(days=1)
            requests = [
                BookingRequest(
                    full_name="Priya Sharma",
                    mobile="9876543210",
                    email="priya@example.com",
                    gender="female",
                    appointment_date=tomorrow,
                    start_time=time(10, 0),
                    end_time=time(10, 30),
                    appointment_type=AppointmentType.CONSULT,
                    provider_id=pinned_provider.id,
                    reason="Blurred vision in left eye",
                    source=BookingSource.PUBLIC_FORM,
                ),
                BookingRequest(
                    full_name="Rahul Verma",
                    mobile="+91 9123456780",
                    gender="male",
                    appointment_date=tomorrow,
                    start_time=time(11, 0),
                    end_time=time(11, 30),
                    appointment_type=AppointmentType.REFRACTION,
                    reason="Annual glasses check",
                    source=BookingSource.PUBLIC_FORM,
                ),
            ]
            for request in requests:
                session.add(request)
            print(f"Created {len(requests)} pending booking requests for {tomorrow}")

        await session.commit()

        print("\n=== Summary ===")
        print(f"Pinned provider ID: {pinned_provider.id}")
        print("Scheduling data setup complete!")


if __name__ == "__main__":
    asyncio.run(create_scheduling_data())
