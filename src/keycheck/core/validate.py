from keycheck.config import PolicyConfig
from keycheck.core.diff import diff_snapshots
from keycheck.core.policy import evaluate_policy
from keycheck.core.ports.baseline import BaselineProvider
from keycheck.models import Snapshot, ValidationResult


def validate_snapshots(baseline: Snapshot, current: Snapshot, policy: PolicyConfig) -> ValidationResult:
    """Diff two snapshots and apply the policy. Raises SchemaMismatchError before producing a result."""
    diff = diff_snapshots(baseline, current, rename_threshold=policy.rename_threshold)
    return evaluate_policy(diff, policy)


def run_validate(provider: BaselineProvider, current: Snapshot, policy: PolicyConfig) -> ValidationResult:
    return validate_snapshots(provider.fetch(), current, policy)
