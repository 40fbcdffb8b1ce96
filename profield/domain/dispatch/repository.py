"""Dispatch repository - Database operations for jobs"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Customer, User
from ...models_dispatch import Job
from ...models_expense import Expense


class JobRepository:
    """Repository for job database operations"""

    @staticmethod
    def get_jobs_between(
        db: Session,
        organization_id: int,
        start: datetime,
        end: datetime,
        assigned_user_id: Optional[int] = None,
    ) -> list[Job]:
        """Non-cancelled jobs starting in [start, end), earliest first"""
        query = (
            db.query(Job)
            .options(joinedload(Job.customer), joinedload(Job.assigned_user))
            .filter(
                Job.organization_id == organization_id,
                Job.scheduled_start >= start,
                Job.scheduled_start < end,
                Job.status != "cancelled",
            )
        )
        if assigned_user_id is not None:
            query = query.filter(Job.assigned_user_id == assigned_user_id)
        return query.order_by(Job.scheduled_start, Job.id).all()

    @staticmethod
    def get_job(db: Session, job_id: int, organization_id: int) -> Optional[Job]:
        return (
            db.query(Job)
            .options(joinedload(Job.customer), joinedload(Job.assigned_user))
            .filter(Job.id == job_id, Job.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def get_customer(db: Session, customer_id: int, organization_id: int) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.id == customer_id, Customer.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def get_active_user(db: Session, user_id: int, organization_id: int) -> Optional[User]:
        return (
            db.query(User)
            .filter(User.id == user_id, User.organization_id == organization_id, User.is_active.is_(True))
            .first()
        )

    @staticmethod
    def create_job(db: Session, **data) -> Job:
        job = Job(**data)
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def update_job(db: Session, job: Job, **updates) -> Job:
        for key, value in updates.items():
            if hasattr(job, key):
                setattr(job, key, value)
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def delete_job(db: Session, job: Job) -> None:
        db.query(Expense).filter(Expense.job_id == job.id).update({Expense.job_id: None}, synchronize_session=False)
        db.delete(job)
        db.commit()
