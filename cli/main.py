"""
School Access Policy Engine - Interactive CLI
=============================================

Command-line interface for administering and exercising the policy
decision engine.

Features:
- User, role, permission and role-hierarchy management
- ABAC policy authoring
- Activity and login signals for behavior and risk checks
- Access decision testing with the full evaluator trail
- Audit log analysis

Built with Typer and Rich.
"""

import json
from datetime import datetime
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.tree import Tree
from rich import box

from config.logging import configure_logging
from config.settings import get_settings

# Initialize CLI app and console
app = typer.Typer(
    name="access-policy",
    help="School Access Policy Engine - RBAC + ABAC + context + risk",
    add_completion=False
)

console = Console()

# Sub-commands
users_app = typer.Typer(help="Manage users")
roles_app = typer.Typer(help="Manage roles and permissions")
policies_app = typer.Typer(help="Manage ABAC policies")
activity_app = typer.Typer(help="Record activity and login attempts")
audit_app = typer.Typer(help="View audit logs")
test_app = typer.Typer(help="Test access decisions")

app.add_typer(users_app, name="users")
app.add_typer(roles_app, name="roles")
app.add_typer(policies_app, name="policies")
app.add_typer(activity_app, name="activity")
app.add_typer(audit_app, name="audit")
app.add_typer(test_app, name="test")


def get_session():
    """Get a database session."""
    from models.database import get_session
    return get_session()


def _find_user(session, username: str):
    from models.entities import User
    user = session.query(User).filter(User.username == username).first()
    if not user:
        console.print(f"[red]User '{username}' not found[/red]")
    return user


def print_banner():
    """Display application banner."""
    banner = """
    ╔═══════════════════════════════════════════════════════════╗
    ║             SCHOOL ACCESS POLICY ENGINE                   ║
    ║                                                           ║
    ║   Roles (RBAC) + Attributes (ABAC) + Context + Risk       ║
    ╚═══════════════════════════════════════════════════════════╝
    """
    console.print(Panel(banner, style="bold blue"))


# ============================================================================
# Database Commands
# ============================================================================

@app.command()
def init():
    """Initialize the database with schema."""
    from models.database import init_db
    init_db()
    console.print("[green]Database initialized successfully![/green]")


@app.command()
def reset():
    """Reset database (WARNING: destroys all data)."""
    if typer.confirm("This will delete all data. Are you sure?"):
        from models.database import reset_db
        reset_db()
        console.print("[yellow]Database reset complete.[/yellow]")


@app.command()
def demo():
    """Load the demo school data."""
    from scenarios import load_demo_data
    from scenarios.demo_data import DEMO_NOW
    load_demo_data()
    console.print("[green]Demo data loaded successfully![/green]")
    console.print("\nTry these commands to explore:")
    console.print("  [cyan]python main.py users list[/cyan]")
    console.print("  [cyan]python main.py roles list[/cyan]")
    console.print(
        "  [cyan]python main.py test access --user ms_rivera --type student --id 10 "
        f"--sensitivity personal --action view --location office --device laptop "
        f"--network wifi --at {DEMO_NOW.isoformat()}[/cyan]"
    )


# ============================================================================
# User Commands
# ============================================================================

@users_app.command("list")
def list_users():
    """List all users in the system."""
    from models.entities import User

    with get_session() as session:
        users = session.query(User).all()

        table = Table(title="System Users", box=box.ROUNDED)
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Username", style="green")
        table.add_column("Full Name")
        table.add_column("Level", justify="right")
        table.add_column("Last Location")
        table.add_column("Status", justify="center")

        for user in users:
            status = "[green]Active[/green]" if user.is_active else "[red]Inactive[/red]"
            table.add_row(
                str(user.id),
                user.username,
                user.full_name or "-",
                str(user.hierarchy_level or 0),
                user.last_known_location or "-",
                status
            )

        console.print(table)


@users_app.command("create")
def create_user(
    username: str = typer.Option(..., help="Username"),
    full_name: str = typer.Option(None, help="Full name"),
    email: str = typer.Option(None, help="Email address"),
    level: int = typer.Option(0, help="Hierarchy level (seniority)"),
    location: str = typer.Option(None, help="Last known location")
):
    """Create a new user."""
    from core.stores import SQLIdentityStore

    with get_session() as session:
        user = SQLIdentityStore(session).create_user(
            username=username,
            full_name=full_name,
            email=email,
            hierarchy_level=level,
            last_known_location=location
        )
        console.print(f"[green]Created user: {username} (ID: {user.id})[/green]")


@users_app.command("set-location")
def set_location(
    username: str = typer.Argument(..., help="Username"),
    location: str = typer.Argument(..., help="Last known location")
):
    """Update a user's last known location."""
    from core.stores import SQLIdentityStore

    with get_session() as session:
        user = _find_user(session, username)
        if not user:
            return
        SQLIdentityStore(session).set_last_known_location(user.id, location)
        console.print(f"[green]{username} last seen at {location}[/green]")


@users_app.command("show")
def show_user(username: str = typer.Argument(..., help="Username to show")):
    """Show roles and effective permissions of a user."""
    from core.hybrid_engine import HybridAccessControl

    with get_session() as session:
        user = _find_user(session, username)
        if not user:
            return

        engine = HybridAccessControl.from_session(session, audit=False)
        summary = engine.get_user_permissions_summary(user.id)

        user_info = f"""
[bold]Username:[/bold] {summary['user']['username']}
[bold]Level:[/bold] {summary['user']['hierarchy_level']}
[bold]Last Location:[/bold] {summary['user']['last_known_location'] or 'N/A'}
[bold]Status:[/bold] {'[green]Active[/green]' if summary['user']['is_active'] else '[red]Inactive[/red]'}
"""
        console.print(Panel(user_info, title="User Information", box=box.ROUNDED))

        if summary['rbac']['roles']:
            roles_tree = Tree("[bold]Roles[/bold]")
            for role in summary['rbac']['effective_roles']:
                direct = role in summary['rbac']['roles']
                roles_tree.add(f"[cyan]{role}[/cyan]" + ("" if direct else " [dim](inherited)[/dim]"))
            console.print(roles_tree)
        else:
            console.print("[yellow]No roles assigned[/yellow]")

        if summary['rbac']['effective_permissions']:
            console.print("\n[bold]Effective Permissions:[/bold]")
            for perm in summary['rbac']['effective_permissions']:
                console.print(f"  [green]✓[/green] {perm}")
        else:
            console.print("[yellow]No permissions[/yellow]")


# ============================================================================
# Role Commands
# ============================================================================

@roles_app.command("list")
def list_roles():
    """List all roles and their permissions."""
    from models.entities import Role

    with get_session() as session:
        roles = session.query(Role).order_by(Role.id).all()

        for role in roles:
            perm_names = sorted(rp.permission.name for rp in role.permissions if rp.permission)
            parents = [h.parent_role.name for h in role.parent_roles]

            tree = Tree(f"[bold cyan]{role.name}[/bold cyan] (ID: {role.id})")
            if role.description:
                tree.add(f"[dim]{role.description}[/dim]")
            if parents:
                tree.add(f"[yellow]Inherits from:[/yellow] {', '.join(parents)}")
            if perm_names:
                perms_branch = tree.add("[green]Permissions[/green]")
                for perm in perm_names:
                    perms_branch.add(perm)
            else:
                tree.add("[yellow]No direct permissions[/yellow]")

            console.print(tree)
            console.print()


@roles_app.command("create")
def create_role(
    name: str = typer.Option(..., help="Role name"),
    description: str = typer.Option(None, help="Role description")
):
    """Create a new role."""
    from core.stores import SQLIdentityStore

    with get_session() as session:
        role = SQLIdentityStore(session).create_role(name, description)
        console.print(f"[green]Created role: {name} (ID: {role.id})[/green]")


@roles_app.command("grant")
def grant_permission(
    role_name: str = typer.Option(..., "--role", "-r", help="Role name"),
    permission: str = typer.Option(..., "--permission", "-p", help="Permission, e.g. student:10:view")
):
    """Grant a permission to a role."""
    from core.stores import SQLIdentityStore

    with get_session() as session:
        try:
            SQLIdentityStore(session).grant_permission(role_name, permission)
        except LookupError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Granted '{permission}' to {role_name}[/green]")


@roles_app.command("assign")
def assign_role(
    username: str = typer.Option(..., "--user", "-u", help="Username"),
    role_name: str = typer.Option(..., "--role", "-r", help="Role name")
):
    """Assign a role to a user."""
    from core.stores import SQLIdentityStore

    with get_session() as session:
        user = _find_user(session, username)
        if not user:
            return
        try:
            SQLIdentityStore(session).assign_role(user.id, role_name)
        except LookupError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Assigned role '{role_name}' to user '{username}'[/green]")


@roles_app.command("hierarchy")
def show_hierarchy(role_name: str = typer.Argument(..., help="Role name")):
    """Show every role a role inherits from."""
    from core.rbac_engine import RBACEngine
    from core.stores import SQLIdentityStore

    with get_session() as session:
        store = SQLIdentityStore(session)
        role = store.get_role(role_name)
        if not role:
            console.print(f"[red]Role '{role_name}' not found[/red]")
            return

        hierarchy = RBACEngine(store).get_role_hierarchy(role.id)

        tree = Tree(f"[bold cyan]{role_name}[/bold cyan] Hierarchy")
        if hierarchy['ancestors']:
            parents = tree.add("[yellow]Inherits From[/yellow]")
            for ancestor in hierarchy['ancestors']:
                indent = "  " * (ancestor['depth'] - 1)
                parents.add(f"{indent}[green]{ancestor['name']}[/green] [dim](depth {ancestor['depth']})[/dim]")
        else:
            tree.add("[dim]No parent roles[/dim]")

        children = [h.child_role.name for h in role.child_roles]
        if children:
            branch = tree.add("[yellow]Inherited By[/yellow]")
            for child in children:
                branch.add(f"[blue]{child}[/blue]")

        console.print(tree)


@roles_app.command("add-parent")
def add_role_parent(
    role_name: str = typer.Option(..., "--role", "-r", help="Child role"),
    parent_name: str = typer.Option(..., "--parent", "-p", help="Parent role to inherit from")
):
    """Create role hierarchy (child inherits from parent)."""
    from core.stores import SQLIdentityStore

    with get_session() as session:
        try:
            SQLIdentityStore(session).add_role_parent(role_name, parent_name)
        except LookupError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]{role_name} now inherits from {parent_name}[/green]")


# ============================================================================
# Policy Commands
# ============================================================================

@policies_app.command("list")
def list_policies():
    """List all ABAC policies in application order."""
    from core.stores import SQLPolicyStore

    with get_session() as session:
        policies = SQLPolicyStore(session).list_policies()

        table = Table(title="ABAC Policies", box=box.ROUNDED)
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Name", style="green")
        table.add_column("Scope")
        table.add_column("Effect")
        table.add_column("Priority", justify="right")
        table.add_column("Conditions", justify="right")
        table.add_column("Active", justify="center")

        for policy in policies:
            effect_style = "green" if policy.effect == "ALLOW" else "red"
            active = "[green]Yes[/green]" if policy.is_active else "[red]No[/red]"
            table.add_row(
                str(policy.id),
                policy.name,
                f"{policy.resource_type}:{policy.action}",
                f"[{effect_style}]{policy.effect}[/{effect_style}]",
                str(policy.priority),
                str(len(policy.conditions)),
                active
            )

        console.print(table)


@policies_app.command("show")
def show_policy(name: str = typer.Argument(..., help="Policy name")):
    """Show detailed policy information."""
    from core.stores import SQLPolicyStore

    with get_session() as session:
        policy = SQLPolicyStore(session).get_policy(name)
        if not policy:
            console.print(f"[red]Policy '{name}' not found[/red]")
            return

        console.print(Panel(
            f"""
[bold]Name:[/bold] {policy.name}
[bold]Scope:[/bold] {policy.resource_type}:{policy.action}
[bold]Effect:[/bold] {policy.effect}
[bold]Priority:[/bold] {policy.priority}
[bold]Active:[/bold] {'Yes' if policy.is_active else 'No'}
""",
            title="Policy Details",
            box=box.ROUNDED
        ))

        table = Table(title="Conditions (all must hold)", box=box.SIMPLE)
        table.add_column("Target", style="cyan")
        table.add_column("Attribute")
        table.add_column("Operator", justify="center")
        table.add_column("Value", style="green")
        for condition in policy.conditions:
            table.add_row(condition.target, condition.attribute, condition.operator, json.dumps(condition.value))
        console.print(table)

        if policy.attributes:
            console.print("\n[bold]Attributes:[/bold]")
            console.print_json(json.dumps(policy.attributes))


@policies_app.command("create")
def create_policy(
    name: str = typer.Option(..., help="Policy name"),
    resource_type: str = typer.Option(..., "--type", "-t", help="Resource type, e.g. student"),
    action: str = typer.Option(..., "--action", "-a", help="Action, e.g. view"),
    effect: str = typer.Option("ALLOW", "--effect", "-e", help="ALLOW or DENY"),
    priority: int = typer.Option(0, "--priority", help="Higher priority is applied later and wins"),
    attributes: str = typer.Option("{}", "--attributes", help="JSON object merged into decisions"),
    description: str = typer.Option(None, help="Description")
):
    """Create an ABAC policy (add conditions with `policies add-condition`)."""
    from core.stores import SQLPolicyStore

    try:
        attrs = json.loads(attributes)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid attributes JSON: {e}[/red]")
        raise typer.Exit(code=1)

    with get_session() as session:
        try:
            policy = SQLPolicyStore(session).create_policy(
                name=name,
                resource_type=resource_type,
                action=action,
                effect=effect,
                priority=priority,
                attributes=attrs,
                description=description
            )
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Created policy: {name} (ID: {policy.id})[/green]")


@policies_app.command("add-condition")
def add_condition(
    name: str = typer.Argument(..., help="Policy name"),
    target: str = typer.Option(..., "--target", help="USER, RESOURCE or CONTEXT"),
    attribute: str = typer.Option(..., "--attr", help="Attribute name"),
    operator: str = typer.Option(..., "--op", help="==, !=, >, <, >=, <=, in, not_in, contains, starts_with, ends_with"),
    value: str = typer.Option(..., "--value", help="JSON value (bare words are taken as strings)")
):
    """Add a condition to a policy."""
    from core.stores import SQLPolicyStore

    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value

    with get_session() as session:
        try:
            SQLPolicyStore(session).add_condition(name, target, attribute, operator, parsed)
        except (LookupError, ValueError) as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Added condition {target}.{attribute} {operator} {parsed!r} to {name}[/green]")


@policies_app.command("enable")
def enable_policy(name: str = typer.Argument(..., help="Policy name")):
    """Activate a policy."""
    from core.stores import SQLPolicyStore

    with get_session() as session:
        if SQLPolicyStore(session).set_active(name, True):
            console.print(f"[green]Policy {name} enabled[/green]")
        else:
            console.print(f"[red]Policy '{name}' not found[/red]")


@policies_app.command("disable")
def disable_policy(name: str = typer.Argument(..., help="Policy name")):
    """Deactivate a policy."""
    from core.stores import SQLPolicyStore

    with get_session() as session:
        if SQLPolicyStore(session).set_active(name, False):
            console.print(f"[yellow]Policy {name} disabled[/yellow]")
        else:
            console.print(f"[red]Policy '{name}' not found[/red]")


# ============================================================================
# Activity Commands
# ============================================================================

@activity_app.command("record")
def record_activity(
    username: str = typer.Option(..., "--user", "-u", help="Username"),
    action: str = typer.Option(..., "--action", "-a", help="Action performed, e.g. view"),
    resource_type: str = typer.Option(None, "--type", "-t", help="Resource type"),
    resource_id: str = typer.Option(None, "--id", help="Resource id"),
    count: int = typer.Option(1, "--count", "-n", help="Number of identical entries")
):
    """Record user activity (feeds the behavioral condition)."""
    from core.stores import SQLActivityLog

    with get_session() as session:
        user = _find_user(session, username)
        if not user:
            return
        log = SQLActivityLog(session)
        for _ in range(count):
            log.record_activity(user.id, action, resource_type, resource_id)
        console.print(f"[green]Recorded {count} '{action}' activities for {username}[/green]")


@activity_app.command("login")
def record_login(
    username: str = typer.Option(..., "--user", "-u", help="Username"),
    failed: bool = typer.Option(False, "--failed", help="Record a failed attempt"),
    ip_address: str = typer.Option(None, "--ip", help="Client IP")
):
    """Record a login attempt (failed attempts raise the risk score)."""
    from core.stores import SQLActivityLog

    with get_session() as session:
        user = _find_user(session, username)
        if not user:
            return
        SQLActivityLog(session).record_login(user.id, success=not failed, ip_address=ip_address)
        outcome = "[red]failed[/red]" if failed else "[green]successful[/green]"
        console.print(f"Recorded {outcome} login for {username}")


# ============================================================================
# Test Commands
# ============================================================================

def _render_decision(decision, username: str, resource, action: str):
    """Print a decision and the trail of evaluator verdicts."""
    headline = "[bold green]ACCESS GRANTED[/bold green]" if decision.allowed else "[bold red]ACCESS DENIED[/bold red]"
    console.print(Panel(
        f"{headline}\n\n"
        f"User: {username}\n"
        f"Resource: {resource.type}:{resource.id} ({resource.sensitivity.value})\n"
        f"Action: {action}\n"
        f"Strategy: {decision.strategy}\n\n"
        f"Reason: {decision.reason}",
        title="Access Decision",
        box=box.DOUBLE
    ))

    if not decision.policies:
        return

    table = Table(title="Evaluator Trail", box=box.ROUNDED)
    table.add_column("Evaluator", style="cyan")
    table.add_column("Verdict", justify="center")
    table.add_column("Details")
    for entry in decision.policies:
        verdict = "[green]ALLOW[/green]" if entry.result.allowed else "[red]DENY[/red]"
        if entry.type == 'RISK':
            details = f"score {entry.result.attributes['riskScore']} / threshold {entry.result.attributes['threshold']}"
        elif entry.type == 'DYNAMIC':
            failed = entry.result.details.get('failedConditions') or []
            details = "failed: " + ", ".join(failed) if failed else "all conditions met"
        else:
            details = entry.result.details.get('reason', '')
        table.add_row(entry.type, verdict, details)
    console.print(table)


@test_app.command("access")
def test_access(
    username: str = typer.Option(..., "--user", "-u", help="Username"),
    resource_type: str = typer.Option(..., "--type", "-t", help="Resource type, e.g. student"),
    resource_id: str = typer.Option(..., "--id", help="Resource id"),
    action: str = typer.Option(..., "--action", "-a", help="Action, e.g. view"),
    sensitivity: str = typer.Option("public", "--sensitivity", help="public, personal, financial, confidential"),
    location: Optional[str] = typer.Option(None, "--location", help="Request location"),
    device: Optional[str] = typer.Option(None, "--device", help="Device type"),
    network: Optional[str] = typer.Option(None, "--network", help="Network type"),
    extra: Optional[List[str]] = typer.Option(None, "--ctx", help="Extra context as key=value (repeatable)"),
    strategy: Optional[str] = typer.Option(None, "--strategy", "-s", help="ALL, ANY, MAJORITY or WEIGHTED"),
    at: Optional[datetime] = typer.Option(None, "--at", help="Evaluate as of this time (ISO format)")
):
    """Test an access decision and show how every evaluator voted."""
    from core.context import ResourceDescriptor
    from core.exceptions import InvalidAccessRequest, SubjectNotFound
    from core.hybrid_engine import HybridAccessControl
    from core.stores import SQLIdentityStore

    rid = int(resource_id) if resource_id.isdigit() else resource_id
    context = {'location': location, 'deviceType': device, 'networkType': network}
    for item in extra or []:
        key, _, raw = item.partition('=')
        try:
            context[key] = json.loads(raw)
        except json.JSONDecodeError:
            context[key] = raw

    try:
        resource = ResourceDescriptor.parse({'type': resource_type, 'id': rid, 'sensitivity': sensitivity})
    except InvalidAccessRequest as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    clock = (lambda: at) if at else datetime.now

    with get_session() as session:
        try:
            subject = SQLIdentityStore(session, clock).get_subject_by_username(username)
        except SubjectNotFound:
            console.print(f"[red]User '{username}' not found[/red]")
            return

        try:
            engine = HybridAccessControl.from_session(session, strategy=strategy, clock=clock)
            decision = engine.check_access(
                user_id=subject.id,
                resource=resource,
                action=action,
                context={k: v for k, v in context.items() if v is not None},
                client_ip="127.0.0.1"
            )
        except InvalidAccessRequest as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)

        _render_decision(decision, username, resource, action)


@test_app.command("scenario")
def run_scenario(
    scenario_name: str = typer.Argument("all", help="Scenario to run: classroom, hierarchy, risk, strategies, all")
):
    """Run the demo scenarios."""
    from scenarios import run_scenarios
    run_scenarios(scenario_name)


# ============================================================================
# Audit Commands
# ============================================================================

@audit_app.command("logs")
def view_logs(
    limit: int = typer.Option(20, "--limit", "-l", help="Number of logs to show"),
    user: str = typer.Option(None, "--user", "-u", help="Filter by username"),
    decision: str = typer.Option(None, "--decision", "-d", help="Filter by decision (PERMIT/DENY)")
):
    """View audit logs."""
    from models.entities import User, AccessDecision as AD
    from core.audit import AuditLogger

    with get_session() as session:
        audit = AuditLogger(session)

        user_id = None
        if user:
            u = session.query(User).filter(User.username == user).first()
            if u:
                user_id = u.id

        dec = None
        if decision:
            dec = AD.PERMIT if decision.upper() == "PERMIT" else AD.DENY

        logs = audit.get_logs(user_id=user_id, decision=dec, limit=limit)

        table = Table(title="Audit Logs", box=box.ROUNDED)
        table.add_column("Time", style="dim")
        table.add_column("User", style="cyan")
        table.add_column("Action")
        table.add_column("Resource")
        table.add_column("Decision")
        table.add_column("Risk", justify="right")
        table.add_column("Reason")

        for log in logs:
            dec_style = "green" if log.decision == AD.PERMIT else "red"
            table.add_row(
                log.timestamp.strftime("%H:%M:%S") if log.timestamp else "-",
                log.username or "-",
                log.action or "-",
                f"{log.resource_type}:{log.resource_id}",
                f"[{dec_style}]{log.decision.value}[/{dec_style}]",
                "-" if log.risk_score is None else str(log.risk_score),
                (log.decision_reason or "-")[:40]
            )

        console.print(table)


@audit_app.command("stats")
def audit_stats(hours: int = typer.Option(24, help="Analysis period in hours")):
    """Show access decision statistics."""
    from core.audit import AuditLogger

    with get_session() as session:
        stats = AuditLogger(session).get_statistics(hours=hours)
        avg_risk = stats['average_risk_score']

        console.print(Panel(
            f"""
[bold]Period:[/bold] Last {stats['period_hours']} hours

[bold]Total Decisions:[/bold] {stats['total_decisions']}
[bold]Permits:[/bold] [green]{stats['permits']}[/green] ({stats['permit_rate']:.1%})
[bold]Denials:[/bold] [red]{stats['denials']}[/red] ({stats['denial_rate']:.1%})

[bold]Unique Users:[/bold] {stats['unique_users']}
[bold]Average Risk Score:[/bold] {'-' if avg_risk is None else f'{avg_risk:.1f}'}

[bold]Denied By:[/bold]
  RBAC: {stats['blocked_by']['RBAC']}
  ABAC: {stats['blocked_by']['ABAC']}
  Dynamic: {stats['blocked_by']['DYNAMIC']}
  Risk: {stats['blocked_by']['RISK']}
""",
            title="Access Decision Statistics",
            box=box.ROUNDED
        ))


@audit_app.command("denials")
def recent_denials(hours: int = typer.Option(24, help="Look back period")):
    """Show recent access denials."""
    from core.audit import AuditLogger

    with get_session() as session:
        denials = AuditLogger(session).get_recent_denials(hours=hours)

        if not denials:
            console.print("[green]No access denials in the specified period.[/green]")
            return

        table = Table(title=f"Access Denials (Last {hours}h)", box=box.ROUNDED)
        table.add_column("Time", style="dim")
        table.add_column("User", style="cyan")
        table.add_column("Action", style="yellow")
        table.add_column("Resource")
        table.add_column("Reason")

        for log in denials:
            table.add_row(
                log.timestamp.strftime("%Y-%m-%d %H:%M:%S") if log.timestamp else "-",
                log.username or "-",
                log.action or "-",
                f"{log.resource_type}:{log.resource_id}",
                (log.decision_reason or "-")[:40]
            )

        console.print(table)


@audit_app.command("export")
def export_logs(
    output: str = typer.Option("audit_export.json", "--output", "-o", help="Output file"),
    format: str = typer.Option("json", "--format", "-f", help="Format: json or csv")
):
    """Export audit logs."""
    from core.audit import AuditLogger

    with get_session() as session:
        try:
            data = AuditLogger(session).export_logs(format=format)
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)

        with open(output, 'w') as f:
            f.write(data)

        console.print(f"[green]Exported audit logs to {output}[/green]")


# ============================================================================
# Main Entry Point
# ============================================================================

@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Log engine decisions at debug level")
):
    """
    School Access Policy Engine

    Combines role permissions, attribute policies, request context and a
    risk score into one allow/deny decision.
    """
    configure_logging("DEBUG" if verbose else get_settings().log_level)

    if ctx.invoked_subcommand is None:
        print_banner()
        console.print("\nUse [cyan]--help[/cyan] to see available commands.\n")
        console.print("Quick Start:")
        console.print("  1. [cyan]python main.py init[/cyan]        - Initialize database")
        console.print("  2. [cyan]python main.py demo[/cyan]        - Load demo school data")
        console.print("  3. [cyan]python main.py users list[/cyan]  - View users")
        console.print("  4. [cyan]python main.py test scenario[/cyan] - Run the scenarios")
        console.print()


if __name__ == "__main__":
    app()
