# carbontrack/services/business_service.py
"""Organization dashboards and alerts for business accounts."""
from __future__ import annotations

from typing import Dict, List, Optional

from flask import current_app

from carbontrack.models import Goal, GoalStatus, User
from carbontrack.services import carbon_ledger
from carbontrack.services.notification_service import NotificationService
from carbontrack.utils.errors import NotFound

DEFAULT_WEEKLY_LIMIT_KG = 230.0


def weekly_limit() -> float:
    return float(current_app.config.get('WEEKLY_CARBON_LIMIT_KG', DEFAULT_WEEKLY_LIMIT_KG))


def get_employee(org_user: User, employee_id: int) -> User:
    employee = User.query.filter_by(id=employee_id, organization_id=org_user.id).first()
    if employee is None:
        raise NotFound("Employee not found in your organization")
    return employee


def _goal_counts(user_id: int) -> Dict[str, int]:
    goals = Goal.query.filter_by(user_id=user_id).all()
    completed = sum(1 for g in goals if g.status == GoalStatus.COMPLETED)
    return {'total': len(goals), 'completed': completed, 'pending': len(goals) - completed}


def list_employees(org_user: User) -> Dict:
    """Every employee with their last-7-days carbon, highest emitters first."""
    limit = weekly_limit()
    employees: List[Dict] = []
    for employee in User.query.filter_by(organization_id=org_user.id).all():
        weekly = carbon_ledger.summarize(employee.id, 7)['total']
        employees.append({
            'id': employee.id,
            'name': employee.name,
            'email': employee.email,
            'weekly_carbon': weekly,
            'exceeds_limit': weekly > limit,
            'goals_completed': _goal_counts(employee.id)['completed'],
            'created_at': employee.created_at.isoformat() if employee.created_at else None,
        })

    employees.sort(key=lambda e: e['weekly_carbon'], reverse=True)
    return {'employees': employees, 'total_employees': len(employees), 'weekly_limit': limit}


def employee_detail(org_user: User, employee_id: int) -> Dict:
    employee = get_employee(org_user, employee_id)
    limit = weekly_limit()
    weekly = carbon_ledger.summarize(employee.id, 7)
    monthly = carbon_ledger.summarize(employee.id, 30)
    return {
        'employee': {
            'id': employee.id,
            'name': employee.name,
            'email': employee.email,
            'created_at': employee.created_at.isoformat() if employee.created_at else None,
        },
        'carbon': {
            'weekly': weekly['total'],
            'monthly': monthly['total'],
            'exceeds_limit': weekly['total'] > limit,
            'by_category': monthly['by_category'],
        },
        'goals': _goal_counts(employee.id),
        'weekly_limit': limit,
    }


def send_alert(org_user: User, employee_id: int, message: Optional[str] = None):
    """Notify an employee; returns the notification or None if they opted out."""
    employee = get_employee(org_user, employee_id)
    text = (message or '').strip() or (
        f"📢 Message from {org_user.organization_name or 'your organization'}: "
        "You have exceeded the recommended weekly carbon footprint limit. "
        "Please review your carbon usage."
    )
    return NotificationService.send_business_alert(employee.id, text)
