"""
Audit Logging Module
====================

Persists access decisions taken through `HybridAccessControl.check_access`
and answers the questions school administrators ask of them: who was
denied recently, how often each evaluator blocked access, what a given
user has been attempting.

The decision engine itself never writes here; auditing is the
caller-facing layer's job.
"""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import desc
from sqlalchemy.orm import Session

from models.entities import AuditLog, AccessDecision
from .context import Decision, ResourceDescriptor


class AuditLogger:
    """
    Audit logging service for access decisions.

    Provides:
    - Log creation for every checked request
    - Filtered queries for investigations
    - Aggregate statistics per evaluator
    - JSON/CSV export
    """

    def __init__(self, session: Session):
        self.session = session

    def log_access_decision(
        self,
        user_id: Optional[int],
        username: Optional[str],
        action: str,
        resource: ResourceDescriptor,
        decision: Decision,
        client_ip: Optional[str] = None,
        session_id: Optional[str] = None,
        request_details: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """
        Record one access decision.

        Args:
            user_id: Requesting user
            username: Username (denormalized for query performance)
            action: Action requested
            resource: Target resource descriptor
            decision: Decision returned by the engine
            client_ip: Client IP address
            session_id: Session identifier
            request_details: Extra request context (JSON-serializable)

        Returns:
            Created AuditLog entry
        """
        entry = AuditLog(
            user_id=user_id,
            username=username,
            action=action,
            resource_type=resource.type,
            resource_id=str(resource.id),
            sensitivity=resource.sensitivity.value,
            decision=AccessDecision.PERMIT if decision.allowed else AccessDecision.DENY,
            decision_reason=decision.reason,
            strategy=decision.strategy,
            policy_results=decision.verdicts,
            risk_score=decision.attributes.get('riskScore'),
            client_ip=client_ip,
            session_id=session_id,
            request_details=request_details
        )
        self.session.add(entry)
        self.session.flush()

        if not decision.allowed:
            logger.info(
                "Access denied: user={} action={} resource={}:{} reason={}",
                username or user_id, action, resource.type, resource.id, decision.reason
            )
        return entry

    def get_logs(
        self,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        action: Optional[str] = None,
        decision: Optional[AccessDecision] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[AuditLog]:
        """Query audit logs, newest first."""
        query = self.session.query(AuditLog)

        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if resource_type is not None:
            query = query.filter(AuditLog.resource_type == resource_type)
        if action is not None:
            query = query.filter(AuditLog.action == action)
        if decision is not None:
            query = query.filter(AuditLog.decision == decision)
        if start_time is not None:
            query = query.filter(AuditLog.timestamp >= start_time)
        if end_time is not None:
            query = query.filter(AuditLog.timestamp <= end_time)

        return query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).offset(offset).all()

    def get_recent_denials(self, hours: int = 24, limit: int = 50) -> List[AuditLog]:
        """DENY entries of the last `hours` hours, newest first."""
        cutoff = datetime.now() - timedelta(hours=hours)
        return self.session.query(AuditLog).filter(
            AuditLog.decision == AccessDecision.DENY,
            AuditLog.timestamp >= cutoff
        ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).all()

    def get_statistics(self, hours: int = 24) -> Dict[str, Any]:
        """
        Aggregate decision statistics.

        `blocked_by` counts, per evaluator, how many decisions it voted
        to deny.
        """
        cutoff = datetime.now() - timedelta(hours=hours)
        logs = self.session.query(AuditLog).filter(AuditLog.timestamp >= cutoff).all()

        total = len(logs)
        permits = sum(1 for l in logs if l.decision == AccessDecision.PERMIT)
        denials = total - permits

        blocked_by = {'RBAC': 0, 'ABAC': 0, 'DYNAMIC': 0, 'RISK': 0}
        by_strategy: Dict[str, int] = {}
        for log in logs:
            for evaluator, allowed in (log.policy_results or {}).items():
                if not allowed and evaluator in blocked_by:
                    blocked_by[evaluator] += 1
            if log.strategy:
                by_strategy[log.strategy] = by_strategy.get(log.strategy, 0) + 1

        scores = [l.risk_score for l in logs if l.risk_score is not None]

        return {
            'period_hours': hours,
            'total_decisions': total,
            'permits': permits,
            'denials': denials,
            'permit_rate': permits / total if total > 0 else 0,
            'denial_rate': denials / total if total > 0 else 0,
            'blocked_by': blocked_by,
            'by_strategy': by_strategy,
            'average_risk_score': sum(scores) / len(scores) if scores else None,
            'unique_users': len(set(l.user_id for l in logs if l.user_id))
        }

    def export_logs(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        format: str = 'json'
    ) -> str:
        """
        Export audit logs as JSON or CSV.

        Raises:
            ValueError: Unsupported format
        """
        logs = self.get_logs(start_time=start_time, end_time=end_time, limit=10000)

        if format == 'json':
            return json.dumps([
                {
                    'timestamp': log.timestamp.isoformat(),
                    'user_id': log.user_id,
                    'username': log.username,
                    'action': log.action,
                    'resource_type': log.resource_type,
                    'resource_id': log.resource_id,
                    'sensitivity': log.sensitivity,
                    'decision': log.decision.value,
                    'decision_reason': log.decision_reason,
                    'strategy': log.strategy,
                    'policy_results': log.policy_results,
                    'risk_score': log.risk_score,
                    'client_ip': log.client_ip,
                    'session_id': log.session_id
                }
                for log in logs
            ], indent=2)

        elif format == 'csv':
            lines = ['timestamp,user_id,username,action,resource_type,resource_id,decision,strategy,risk_score']
            for log in logs:
                lines.append(
                    f'{log.timestamp.isoformat()},{log.user_id},{log.username},'
                    f'{log.action},{log.resource_type},{log.resource_id},'
                    f'{log.decision.value},{log.strategy},{log.risk_score}'
                )
            return '\n'.join(lines)

        else:
            raise ValueError(f"Unsupported format: {format}")
