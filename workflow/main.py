from __future__ import annotations

import argparse
import getpass
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, TextIO, TypeVar

from pydantic import ValidationError

from schemas.ab_test_ir import ABTest, ABTestConfig, ABTestVariants, Variant
from schemas.github_ir import PullRequest
from schemas.linear_ir import LinearIssue
from schemas.session_ir import ABTestRef
from skills import git_tools
from skills.ab_testing import (
    ABTestStore,
    analyze_results,
    assign,
    refresh_metrics,
    sample_size_reached,
    samples_needed,
    stop_test,
)
from skills.assistant import run_interactive
from skills.github_client import GitHubClient
from skills.guidelines import (
    backup_file,
    find_guidelines_file,
    generate_section,
    has_section,
    update_guidelines,
)
from skills.linear_client import LinearClient, find_done_state
from skills.pattern_report import PatternReport, build_pattern_report, export_insights
from skills.project_context import build_project_context
from skills.prompt_builder import build_prompt, classify_issue, default_prompt
from skills.report import (
    branch_attachment_title,
    branch_comment,
    build_pr_content,
    created_subtitle,
    format_date,
    metrics_comment,
    pr_attachment_title,
)
from skills.session_store import SessionStore
from skills.storage import validate_key
from skills.template_selector import (
    SelectionThresholds,
    load_library,
    refresh_library_stats,
    save_library,
    select_template,
)
from workflow.config import WorkflowConfig, load_config
from workflow.console import ConsoleUI
from workflow.errors import (
    AmbiguousExperimentError,
    ConfigurationError,
    ExperimentExistsError,
    ExperimentNotFoundError,
    ExternalCallError,
)

T = TypeVar("T")


@dataclass
class Runtime:
    config: WorkflowConfig
    console: ConsoleUI
    cwd: Path
    ask: Callable[[str], str] = input
    stdin: TextIO = sys.stdin
    linear_factory: Callable[[WorkflowConfig], LinearClient] = LinearClient.from_config
    github_factory: Callable[[WorkflowConfig], GitHubClient] = GitHubClient.from_config

    def linear(self) -> LinearClient:
        return self.linear_factory(self.config)

    def github(self) -> GitHubClient:
        return self.github_factory(self.config)

    def sessions(self) -> SessionStore:
        return SessionStore.from_dir(self.config.store.sessions_dir)

    def ab_tests(self) -> ABTestStore:
        return ABTestStore.from_dir(self.config.store.ab_tests_dir)

    def confirm(self, question: str) -> bool:
        return self.ask(f"{question} (y/N): ").strip().lower() in ("y", "yes")

    def has_linear_token(self) -> bool:
        return self.config.secret(self.config.linear.api_key_env) is not None

    def has_github_access(self) -> bool:
        github = self.config.github
        return self.config.secret(github.token_env) is not None and bool(
            github.repo or self.config.secret(github.repo_env)
        )


# Input parsers; argparse reports ArgumentTypeError messages verbatim.
def _success_rate(value: str) -> float:
    try:
        rate = float(value)
    except ValueError:
        rate = -1.0
    if not 0.0 <= rate <= 1.0:
        raise argparse.ArgumentTypeError(f"success rate must be between 0 and 1, got {value!r}")
    return rate


def _satisfaction(value: str) -> float:
    try:
        score = float(value)
    except ValueError:
        score = 0.0
    if not 1.0 <= score <= 5.0:
        raise argparse.ArgumentTypeError(f"satisfaction must be between 1 and 5, got {value!r}")
    return score


def _count(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        number = -1
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value!r}")
    return number


def _positive_int(value: str) -> int:
    number = _count(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def _yes_no(value: str) -> bool:
    answer = value.strip().lower()
    if answer in ("y", "yes"):
        return True
    if answer in ("n", "no"):
        return False
    raise argparse.ArgumentTypeError(f"answer y or n, got {value!r}")


def _ask_optional(runtime: Runtime, question: str, parse: Callable[[str], T]) -> Optional[T]:
    """Ask until the answer parses; a blank answer means unset."""
    while True:
        answer = runtime.ask(question).strip()
        if not answer:
            return None
        try:
            return parse(answer)
        except argparse.ArgumentTypeError as exc:
            runtime.console.warning(str(exc))


def _wants(runtime: Runtime, flag: Optional[bool], question: str) -> bool:
    if flag is not None:
        return flag
    return runtime.confirm(question)


def _thresholds(config: WorkflowConfig) -> SelectionThresholds:
    selection = config.selection
    return SelectionThresholds(
        default_template=selection.default_template,
        tech_min_success=selection.tech_min_success,
        tech_min_usage=selection.tech_min_usage,
        mapped_min_success=selection.mapped_min_success,
        mapped_min_usage=selection.mapped_min_usage,
        tech_priority=[(tag, template) for tag, template in selection.tech_priority],
    )


def _fetch_issue(runtime: Runtime, issue_id: str) -> Optional[LinearIssue]:
    runtime.console.status(f"Fetching Linear issue: {issue_id}")
    with runtime.linear() as linear:
        issue = linear.fetch_issue(issue_id)
    if issue is None:
        runtime.console.error(f"Issue not found or failed to fetch: {issue_id}")
        return None
    runtime.console.success(f"Found issue: {issue.title}")
    runtime.console.issue(issue)
    return issue


def _resolve_issue(runtime: Runtime, args: argparse.Namespace) -> Optional[LinearIssue]:
    console = runtime.console
    if args.from_stdin:
        console.status("Reading issue data from stdin...")
        raw = runtime.stdin.read()
        if not raw.strip():
            console.error("No issue data received from stdin")
            return None
        try:
            issue = LinearIssue.model_validate_json(raw)
        except ValidationError:
            console.error("Invalid issue data received")
            console.line(f"Issue data: {raw.strip()}")
            return None
        console.success(f"Found issue: {issue.title}")
        console.issue(issue)
        return issue
    if not args.issue:
        console.error("Issue ID is required. Use -i or --issue to specify it.")
        return None
    return _fetch_issue(runtime, args.issue)


def _launch_assistant(runtime: Runtime, prompt: str) -> int:
    console = runtime.console
    assistant = runtime.config.assistant
    console.status("Prompting assistant with task details...")
    try:
        code = run_interactive(prompt, assistant.command, runtime.cwd, assistant.install_hint)
    except ConfigurationError:
        console.line("Prompt content:")
        console.line("===============")
        console.line(prompt)
        raise
    if code == 0:
        console.success("Assistant session completed")
    else:
        console.warning(f"Assistant session ended with exit code: {code}")
    return code


def _refresh_ab_test(runtime: Runtime, test: ABTest) -> ABTest:
    records = runtime.sessions().all()
    return refresh_metrics(test, records, runtime.config.store.unset_policy)


def _record_feedback(
    runtime: Runtime,
    session_id: str,
    success_rate: Optional[float],
    satisfaction: Optional[float],
    completed: Optional[bool],
    files_modified: Optional[int],
) -> int:
    console = runtime.console
    record = runtime.sessions().record_outcome(
        session_id, success_rate, satisfaction, completed, files_modified
    )
    if record is None:
        console.warning(f"Session not found: {session_id}; nothing recorded")
        return 0
    console.success(f"Feedback recorded for session {session_id}")
    if record.ab_test is not None:
        store = runtime.ab_tests()
        test = store.get(record.ab_test.test_name)
        if test is None:
            console.warning(f"A/B test '{record.ab_test.test_name}' no longer exists")
        else:
            store.save(_refresh_ab_test(runtime, test))
            console.status(f"A/B test '{test.test_name}' metrics refreshed")
    return 0


def _collect_feedback(runtime: Runtime, session_id: str) -> int:
    runtime.console.section("Session Feedback")
    runtime.console.line("Rate this session to improve future prompts (blank to skip).")
    success_rate = _ask_optional(runtime, "Success rate (0-1): ", _success_rate)
    satisfaction = _ask_optional(runtime, "Satisfaction (1-5): ", _satisfaction)
    completed = _ask_optional(runtime, "Task completed? (y/n): ", _yes_no)
    files_modified = _ask_optional(runtime, "Files modified: ", _count)
    if success_rate is None and satisfaction is None and completed is None and files_modified is None:
        runtime.console.status(f"No feedback given. Record later with: workflow feedback {session_id}")
        return 0
    return _record_feedback(runtime, session_id, success_rate, satisfaction, completed, files_modified)


# --- commands -----------------------------------------------------------


def cmd_checkout(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    config = runtime.config
    console.header("Task Branch Checkout")
    issue = _fetch_issue(runtime, args.issue)
    if issue is None:
        return 1
    branch = git_tools.generate_branch_name(issue)
    if branch.endswith("/unknown"):
        console.error(f"Failed to generate valid branch name: {branch}")
        return 1
    console.status(f"Generated branch name: {branch}")
    base = args.base_branch or config.github.default_base_branch

    with runtime.github() as github:
        sha = github.get_branch_head_sha(base)
        if github.create_branch(branch, sha):
            console.success(f"Branch created: {branch}")
        else:
            console.warning(f"Branch {branch} already exists")
        branch_url = github.branch_url(branch)

    console.status("Adding branch link as comment to Linear issue")
    created = format_date()
    with runtime.linear() as linear:
        linear.create_attachment(
            issue.id,
            branch_attachment_title(branch),
            created_subtitle(created),
            branch_url,
            config.github.icon_url,
        )
        linear.create_comment(issue.id, branch_comment(branch, branch_url, created))

    if not args.skip_checkout:
        console.status("Checking out branch locally")
        try:
            existed = git_tools.checkout_branch(branch, base, runtime.cwd)
        except ExternalCallError as exc:
            console.warning(f"Branch checkout failed, but branch was created successfully: {exc}")
        else:
            if existed:
                console.warning(f"Local branch {branch} already exists, checked out")
            console.success(f"Checked out {branch}")

    console.line()
    console.success("Integration complete!")
    console.kv("Issue", issue.title)
    console.kv("Branch", branch)
    console.kv("GitHub", branch_url)
    console.line()

    if _wants(runtime, args.prompt, "Would you like to prompt the assistant with this task?"):
        _launch_assistant(runtime, default_prompt(issue, git_tools.current_branch(runtime.cwd)))
        return 0
    console.line("Next steps:")
    console.bullets(
        [
            "Start working on your feature",
            "Use [AI] and [DEV] tags in commit messages",
            f"Push changes: git push origin {branch}",
            f"Or run: workflow prompt -i {args.issue}",
        ]
    )
    return 0


def cmd_prompt(runtime: Runtime, args: argparse.Namespace) -> int:
    runtime.console.header("Assistant Task Prompt")
    issue = _resolve_issue(runtime, args)
    if issue is None:
        return 1
    prompt = default_prompt(issue, git_tools.current_branch(runtime.cwd))
    _launch_assistant(runtime, prompt)
    return 0


def cmd_perform(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    config = runtime.config
    console.header("Perform Task")
    issue = _resolve_issue(runtime, args)
    if issue is None:
        return 1

    issue_type = classify_issue(issue)
    context = build_project_context(runtime.cwd)
    library = load_library(config.store.templates_path)
    caller = args.caller or getpass.getuser()

    assignment = None
    try:
        assignment = assign(runtime.ab_tests().all(), caller, issue_type)
    except AmbiguousExperimentError as exc:
        console.warning(f"{exc}. Falling back to adaptive template selection.")

    ab_ref: Optional[ABTestRef] = None
    template_text: Optional[str] = None
    if assignment is not None:
        template_name = assignment.template
        # Variant templates are library names or literal prompt text.
        known = library is not None and library.stats_for(template_name) is not None
        if not known and template_name != config.selection.default_template:
            template_text = template_name
        ab_ref = ABTestRef(test_name=assignment.test_name, variant=assignment.variant)
        console.status(
            f"A/B test {assignment.test_name}: variant {assignment.variant} ({template_name})"
        )
    else:
        template_name = select_template(issue_type, context.tech_stack, library, _thresholds(config))
        stack = ",".join(context.tech_stack) or "unknown"
        console.status(f"Using template: {template_name} (based on {issue_type} + {stack})")

    prompt = build_prompt(
        issue,
        template_name,
        context.branch,
        context.tech_stack,
        context.files_changed,
        library,
        template_text=template_text,
    )
    session_id = runtime.sessions().create(
        issue.identifier,
        issue_type,
        prompt,
        template_name,
        project_context=context,
        ab_test=ab_ref,
    )
    console.status(f"Session logged (ID: {session_id})")

    _launch_assistant(runtime, prompt)
    console.success("Task prompt completed!")
    if args.no_feedback:
        console.status(f"Record feedback later with: workflow feedback {session_id}")
        return 0
    return _collect_feedback(runtime, session_id)


def cmd_feedback(runtime: Runtime, args: argparse.Namespace) -> int:
    values = (args.success_rate, args.satisfaction, args.completed, args.files_modified)
    if all(value is None for value in values):
        return _collect_feedback(runtime, args.session_id)
    return _record_feedback(runtime, args.session_id, *values)


def _optional_issue(runtime: Runtime, issue_id: Optional[str]) -> Optional[LinearIssue]:
    console = runtime.console
    if not issue_id:
        return None
    if not runtime.has_linear_token():
        console.warning(
            f"{runtime.config.linear.api_key_env} not set. "
            "PR will be created without Linear issue details."
        )
        return None
    try:
        with runtime.linear() as linear:
            issue = linear.fetch_issue(issue_id)
    except ExternalCallError as exc:
        console.warning(f"Failed to fetch Linear issue {issue_id}: {exc}")
        return None
    if issue is None:
        console.warning(f"Linear issue not found: {issue_id}")
    return issue


def _link_pr(
    runtime: Runtime,
    issue_id: str,
    issue: Optional[LinearIssue],
    pr: PullRequest,
) -> bool:
    console = runtime.console
    if not runtime.has_linear_token():
        console.warning("Cannot connect PR to Linear - missing token")
        return False
    console.status("Connecting PR to Linear issue...")
    try:
        with runtime.linear() as linear:
            linear.create_attachment(
                issue.id if issue is not None else issue_id,
                pr_attachment_title(pr.number, pr.title),
                created_subtitle(format_date()),
                pr.html_url,
                runtime.config.github.icon_url,
            )
    except ExternalCallError as exc:
        console.warning(f"Could not connect PR to Linear: {exc}")
        return False
    console.success("PR connected to Linear issue")
    return True


def cmd_raise_pr(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    console.header("Raise PR")
    base = args.base_branch or runtime.config.github.default_base_branch
    branch = git_tools.current_branch(runtime.cwd)
    if branch == "unknown":
        console.error("Could not determine current branch")
        return 1
    if branch == base:
        console.error(f"Cannot create PR from base branch '{base}'")
        console.error("Please checkout a feature branch first")
        return 1
    console.status(f"Current branch: {branch}")
    console.status(f"Base branch: {base}")

    issue_id = args.issue
    if not issue_id and args.auto_detect:
        issue_id = git_tools.extract_issue_id(branch)
        if issue_id:
            console.status(f"Auto-detected issue ID: {issue_id}")
        else:
            console.warning("Could not auto-detect issue ID from branch name")
    issue = _optional_issue(runtime, issue_id)

    with runtime.github() as github:
        pr = github.find_open_pull_request(branch)
        if pr is not None:
            console.warning("Pull request already exists for this branch")
            console.warning(f"URL: {pr.html_url}")
            if not (args.yes or runtime.confirm("Continue with the existing PR?")):
                console.status("Cancelled by user")
                return 0
        else:
            title, body = build_pr_content(branch, issue, args.title, args.description)
            console.status(f"Pushing branch '{branch}' to origin...")
            git_tools.push_branch(branch, runtime.cwd)
            console.success("Branch pushed successfully")
            console.status("Creating pull request...")
            pr = github.create_pull_request(title, body, base, branch)
            console.success("Pull request created successfully!")
    console.kv("Title", pr.title)
    console.kv("Branch", f"{branch} -> {base}")
    console.kv("URL", pr.html_url)

    if issue_id:
        _link_pr(runtime, issue_id, issue, pr)
    console.line()
    console.success("PR creation completed successfully!")
    if not issue_id:
        return 0
    console.status("Next steps:")
    console.bullets(
        [
            "Review the PR and make any necessary changes",
            "Request reviews from team members",
            "Merge the PR when approved",
        ]
    )
    if _wants(runtime, args.complete, "Would you like to mark the task complete now?"):
        return _complete(runtime, issue_id, base, False, pr.html_url)
    console.status(f"Run later with: workflow complete -i {issue_id}")
    return 0


def _lookup_pr_url(runtime: Runtime) -> Optional[str]:
    if not runtime.has_github_access():
        return None
    branch = git_tools.current_branch(runtime.cwd)
    if branch == "unknown":
        return None
    try:
        with runtime.github() as github:
            pr = github.find_open_pull_request(branch)
    except ExternalCallError as exc:
        runtime.console.warning(f"Could not look up pull request: {exc}")
        return None
    return pr.html_url if pr is not None else None


def _complete(
    runtime: Runtime,
    issue_id: str,
    base: str,
    skip_status_update: bool,
    pr_url: Optional[str],
) -> int:
    console = runtime.console
    issue = _fetch_issue(runtime, issue_id)
    if issue is None:
        return 1
    with runtime.linear() as linear:
        if skip_status_update:
            console.status("Skipping status update (--skip-status-update flag used)")
        else:
            console.status("Updating issue status to Done...")
            states = linear.list_workflow_states()
            done = find_done_state(states, runtime.config.linear.done_state_name)
            if done is None:
                console.error("Could not find 'Done' state ID")
                console.line("Available states:")
                console.bullets(f"{state.name} (type: {state.type}, id: {state.id})" for state in states)
                return 1
            linear.update_issue_state(issue.id, done.id)
            console.success("Issue status updated to Done")

        console.status("Analyzing git commits...")
        metrics = git_tools.collect_commit_metrics(base, runtime.cwd)
        if metrics.total_commits == 0:
            console.warning("No commits found in current branch")
        branch = git_tools.current_branch(runtime.cwd)
        console.status("Creating task metrics comment...")
        comment_id = linear.create_comment(
            issue.id, metrics_comment(metrics, branch, format_date(), pr_url)
        )
    console.success(f"Task metrics comment added to Linear issue (ID: {comment_id})")
    console.section("Task Metrics")
    console.commit_metrics(metrics)
    return 0


def cmd_complete(runtime: Runtime, args: argparse.Namespace) -> int:
    runtime.console.header("Mark Task Complete")
    base = args.base_branch or runtime.config.github.default_base_branch
    pr_url = args.pr_url or _lookup_pr_url(runtime)
    return _complete(runtime, args.issue, base, args.skip_status_update, pr_url)


def _print_pattern_report(runtime: Runtime, report: PatternReport) -> None:
    console = runtime.console
    console.kv("Generated", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
    console.kv("Total Sessions", report.total_sessions)
    console.bucket_table("Success Rate by Issue Type", report.by_issue_type)
    console.bucket_table("Template Effectiveness", report.by_template, width=20)
    console.bucket_table(
        "Technology Stack Patterns", report.by_tech, width=15, show_satisfaction=False
    )
    console.section("Improvement Opportunities")
    console.bullets(
        [
            f"Low satisfaction rate: {report.low_satisfaction_pct:.1f}% "
            f"({report.low_satisfaction_sessions}/{report.rated_sessions} sessions)",
            f"Task completion rate: {100.0 - report.incomplete_pct:.1f}% "
            f"({report.completed_sessions}/{report.total_sessions} completed)",
        ]
    )
    for warning in report.warnings:
        console.warning(warning)


def cmd_analyze(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    store_cfg = runtime.config.store
    console.header("Pattern Analysis Engine")
    records = runtime.sessions().all()
    show_report = args.report or not (args.update_templates or args.export_insights)

    if show_report:
        if not records:
            console.error("No session data found. Run some tasks first.")
            return 1
        if len(records) < args.min_sessions:
            console.warning(
                f"Only {len(records)} sessions found. "
                f"Need at least {args.min_sessions} for meaningful analysis."
            )
            return 1
        _print_pattern_report(runtime, build_pattern_report(records, store_cfg.unset_policy))

    if args.update_templates:
        library = load_library(store_cfg.templates_path)
        if library is None:
            console.warning(f"No template library at {store_cfg.templates_path}; nothing to update")
        else:
            save_library(refresh_library_stats(library, records), store_cfg.templates_path)
            console.success(f"Template statistics updated: {store_cfg.templates_path}")

    if args.export_insights:
        path = export_insights(
            build_pattern_report(records, store_cfg.unset_policy), store_cfg.insights_path
        )
        console.success(f"Insights exported to: {path}")

    console.line()
    console.success("Pattern analysis completed!")
    return 0


def cmd_guidelines(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    console.header("Update Guidelines")
    path = find_guidelines_file(runtime.cwd)
    if path is None:
        console.error("CLAUDE.md not found in current directory, workflow/, or parent directory")
        console.line("Please create a CLAUDE.md file or run this command from the project root")
        return 1
    console.status(f"Found {path.name} at: {path}")

    records = runtime.sessions().all()
    if len(records) < args.min_sessions:
        console.warning(
            f"Only {len(records)} sessions found. "
            f"Need at least {args.min_sessions} for meaningful updates."
        )
        if not args.force:
            console.line("Use --force to override this requirement")
            return 1
    console.status(f"Analyzing {len(records)} session(s) for pattern extraction...")

    if args.backup:
        console.success(f"Backup created: {backup_file(path)}")

    section = generate_section(records)
    if not section:
        console.warning("No session data available for generating guidelines")
        return 1
    action = (
        "update the existing AI Performance Guidelines section"
        if has_section(path.read_text(encoding="utf-8"))
        else "add a new AI Performance Guidelines section"
    )
    if args.dry_run:
        console.line(f"Preview of changes to {path}:")
        console.line(f"Would {action}")
        console.line()
        console.line("New content:")
        console.line(section)
        return 0
    if not args.force and not runtime.confirm(f"About to {action} in {path}. Continue?"):
        console.status("Update cancelled by user")
        return 0
    update_guidelines(path, section)
    console.success(f"{path.name} updated successfully!")
    return 0


def cmd_ab_create(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    store = runtime.ab_tests()
    try:
        validate_key(args.name)
    except ValueError:
        console.error(f"Invalid test name: {args.name!r} (letters, digits, '.', '_' and '-' only)")
        return 1
    if store.get(args.name) is not None:
        raise ExperimentExistsError(f"A/B test '{args.name}' already exists")
    console.header(f"Creating A/B Test: {args.name}")

    def _value(current: Optional[str], question: str) -> str:
        if current is not None:
            return current
        return runtime.ask(question).strip()

    description = _value(args.description, "Test description: ")
    a_name = _value(args.variant_a_name, "Variant A name (control): ")
    a_template = _value(args.variant_a_template, "Variant A template: ")
    b_name = _value(args.variant_b_name, "Variant B name (test): ")
    b_template = _value(args.variant_b_template, "Variant B template: ")
    targets = _value(args.target_issue_types, "Target issue types (comma-separated, e.g. bug,feature): ")
    min_sample_size = args.min_sample_size
    if min_sample_size is None:
        min_sample_size = _ask_optional(
            runtime, "Minimum sample size per variant (default: 10): ", _positive_int
        ) or 10

    missing = [
        label
        for label, value in (
            ("variant A name", a_name),
            ("variant A template", a_template),
            ("variant B name", b_name),
            ("variant B template", b_template),
            ("target issue types", targets),
        )
        if not value
    ]
    if missing:
        console.error(f"Missing {', '.join(missing)}")
        return 1

    test = store.create(
        ABTest(
            test_name=args.name,
            description=description,
            variants=ABTestVariants(
                A=Variant(name=a_name, template=a_template),
                B=Variant(name=b_name, template=b_template),
            ),
            config=ABTestConfig(
                target_issue_types=targets.split(","),
                min_sample_size=min_sample_size,
            ),
        )
    )
    console.success(f"A/B test '{test.test_name}' created successfully!")
    console.status("Sessions started with 'workflow perform' are assigned to variants automatically")
    return 0


def cmd_ab_list(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    console.header("A/B Tests")
    tests = sorted(runtime.ab_tests().all(), key=lambda test: test.test_name)
    if not tests:
        console.line("  No A/B tests found")
        return 0
    records = runtime.sessions().all()
    for test in tests:
        console.ab_test_row(refresh_metrics(test, records, runtime.config.store.unset_policy))
    return 0


def _show_status(runtime: Runtime, test: ABTest) -> None:
    console = runtime.console
    console.kv("Description", test.description or "-")
    console.kv("Status", test.status)
    console.kv("Created", test.created or "-")
    if test.stopped:
        console.kv("Stopped", test.stopped)
    console.kv("Target issue types", ", ".join(test.config.target_issue_types))
    console.ab_variants(test)
    console.line()
    if sample_size_reached(test):
        console.line("Sample size reached. Comparison available.")
        if test.results.statistical_significance and test.results.winning_variant:
            console.line(f"Winning variant: {test.results.winning_variant}")
        else:
            console.line("No clear difference detected")
    else:
        needed = samples_needed(test)
        console.line(
            f"Need more data: A needs {needed['A']} more, B needs {needed['B']} more sessions"
        )


def _load_refreshed(runtime: Runtime, name: str) -> ABTest:
    store = runtime.ab_tests()
    test = _refresh_ab_test(runtime, store.require(name))
    store.save(test)
    return test


def cmd_ab_status(runtime: Runtime, args: argparse.Namespace) -> int:
    test = _load_refreshed(runtime, args.name)
    runtime.console.header(f"A/B Test Status: {test.test_name}")
    _show_status(runtime, test)
    return 0


def cmd_ab_stop(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    store = runtime.ab_tests()
    test = _refresh_ab_test(runtime, store.require(args.name))
    console.status(f"Stopping A/B test: {test.test_name}")
    if stop_test(test):
        console.success(f"A/B test '{test.test_name}' stopped successfully")
    else:
        console.warning(f"A/B test '{test.test_name}' was already stopped")
    store.save(test)
    winner = test.results.winning_variant
    console.kv("Winning variant", winner or "none")
    return 0


def cmd_ab_report(runtime: Runtime, args: argparse.Namespace) -> int:
    console = runtime.console
    test = _load_refreshed(runtime, args.name)
    console.header(f"A/B Test Report: {test.test_name}")
    _show_status(runtime, test)
    console.section("Recommendations")
    a = test.variants.A
    b = test.variants.B
    winner = analyze_results(test)
    if winner is None:
        console.line("No clear winner. Consider:")
        console.bullets(
            [
                "Running test longer for more data",
                "Testing more dramatic variations",
                "Keeping current approach",
            ]
        )
        return 0
    best, other = (b, a) if winner == "B" else (a, b)
    verb = "implementing" if winner == "B" else "keeping"
    console.line(f"Recommend {verb} Variant {winner} ({best.name})")
    console.bullets(
        [
            "Higher success rate: "
            f"{(best.metrics.avg_success_rate - other.metrics.avg_success_rate) * 100:.1f}% better",
            "Higher satisfaction: "
            f"{best.metrics.avg_satisfaction - other.metrics.avg_satisfaction:.1f} point better",
        ]
    )
    return 0


def cmd_ab_assign(runtime: Runtime, args: argparse.Namespace) -> int:
    caller = args.caller or getpass.getuser()
    assignment = assign(runtime.ab_tests().all(), caller, args.issue_type)
    if assignment is None:
        runtime.console.status(f"No active A/B test targets issue type '{args.issue_type}'")
        return 0
    runtime.console.line(f"{assignment.test_name}:{assignment.variant}:{assignment.template}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow",
        description="Linear/GitHub task workflow with prompt-session learning",
    )
    parser.add_argument("--config", default=None, help="Path to workflow YAML config")
    parser.add_argument("--quiet", action="store_true", help="Suppress console output")
    sub = parser.add_subparsers(dest="command", required=True)

    checkout = sub.add_parser("checkout", help="Create a GitHub branch for a Linear issue")
    checkout.add_argument("-i", "--issue", required=True, help="Linear issue ID (e.g. ABC-123)")
    checkout.add_argument("-b", "--base-branch", default=None, help="Base branch to branch from")
    checkout.add_argument("--skip-checkout", action="store_true", help="Don't check out locally")
    checkout.add_argument(
        "--prompt",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Prompt the assistant afterwards (asks when omitted)",
    )
    checkout.set_defaults(handler=cmd_checkout)

    for name, handler, text in (
        ("prompt", cmd_prompt, "Prompt the assistant with issue details"),
        ("perform", cmd_perform, "Prompt with an adaptive template and log a session"),
    ):
        command = sub.add_parser(name, help=text)
        source = command.add_mutually_exclusive_group()
        source.add_argument("-i", "--issue", default=None, help="Linear issue ID")
        source.add_argument(
            "--from-stdin", action="store_true", help="Read issue JSON from stdin (no API call)"
        )
        if name == "perform":
            command.add_argument("--caller", default=None, help="A/B assignment key (default: user)")
            command.add_argument(
                "--no-feedback", action="store_true", help="Skip the feedback questions"
            )
        command.set_defaults(handler=handler)

    feedback = sub.add_parser("feedback", help="Record the outcome of a session")
    feedback.add_argument("session_id")
    feedback.add_argument("--success-rate", type=_success_rate, default=None)
    feedback.add_argument("--satisfaction", type=_satisfaction, default=None)
    done = feedback.add_mutually_exclusive_group()
    done.add_argument("--completed", dest="completed", action="store_const", const=True, default=None)
    done.add_argument("--not-completed", dest="completed", action="store_const", const=False)
    feedback.add_argument("--files-modified", type=_count, default=None)
    feedback.set_defaults(handler=cmd_feedback)

    raise_pr = sub.add_parser("raise-pr", help="Push the branch and open a pull request")
    raise_pr.add_argument("-i", "--issue", default=None, help="Linear issue ID")
    raise_pr.add_argument("-b", "--base-branch", default=None)
    raise_pr.add_argument("-t", "--title", default=None, help="Custom PR title")
    raise_pr.add_argument("-d", "--description", default=None, help="Custom PR description")
    raise_pr.add_argument(
        "--no-auto-detect",
        dest="auto_detect",
        action="store_false",
        help="Don't detect the issue ID from the branch name",
    )
    raise_pr.add_argument("-y", "--yes", action="store_true", help="Reuse an existing PR without asking")
    raise_pr.add_argument(
        "--complete",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Mark the task complete afterwards (asks when omitted)",
    )
    raise_pr.set_defaults(handler=cmd_raise_pr)

    complete = sub.add_parser("complete", help="Move the issue to Done and post commit metrics")
    complete.add_argument("-i", "--issue", required=True)
    complete.add_argument("-b", "--base-branch", default=None)
    complete.add_argument("--skip-status-update", action="store_true")
    complete.add_argument("--pr-url", default=None, help="PR link for the metrics comment")
    complete.set_defaults(handler=cmd_complete)

    analyze = sub.add_parser("analyze", help="Analyze stored session patterns")
    analyze.add_argument("--report", action="store_true", help="Print the analysis report")
    analyze.add_argument("--update-templates", action="store_true", help="Refresh template stats")
    analyze.add_argument("--export-insights", action="store_true", help="Write the insights file")
    analyze.add_argument("--min-sessions", type=_positive_int, default=3)
    analyze.set_defaults(handler=cmd_analyze)

    guidelines = sub.add_parser("guidelines", help="Update CLAUDE.md with learned patterns")
    guidelines.add_argument("--dry-run", action="store_true")
    guidelines.add_argument("--force", action="store_true")
    guidelines.add_argument("--backup", action="store_true")
    guidelines.add_argument("--min-sessions", type=_positive_int, default=5)
    guidelines.set_defaults(handler=cmd_guidelines)

    ab = sub.add_parser("ab", help="Manage prompt template A/B tests")
    ab_sub = ab.add_subparsers(dest="ab_command", required=True)
    create = ab_sub.add_parser("create", help="Create a test (asks for missing values)")
    create.add_argument("name")
    create.add_argument("--description", default=None)
    create.add_argument("--variant-a-name", default=None)
    create.add_argument("--variant-a-template", default=None)
    create.add_argument("--variant-b-name", default=None)
    create.add_argument("--variant-b-template", default=None)
    create.add_argument("--target-issue-types", default=None, help="Comma-separated")
    create.add_argument("--min-sample-size", type=_positive_int, default=None)
    create.set_defaults(handler=cmd_ab_create)
    ab_sub.add_parser("list", help="List tests").set_defaults(handler=cmd_ab_list)
    for name, handler, text in (
        ("status", cmd_ab_status, "Show test status"),
        ("stop", cmd_ab_stop, "Stop a test"),
        ("report", cmd_ab_report, "Detailed report with recommendation"),
    ):
        command = ab_sub.add_parser(name, help=text)
        command.add_argument("name")
        command.set_defaults(handler=handler)
    assign_cmd = ab_sub.add_parser("assign", help="Show the variant a caller gets")
    assign_cmd.add_argument("issue_type")
    assign_cmd.add_argument("--caller", default=None)
    assign_cmd.set_defaults(handler=cmd_ab_assign)
    return parser


def run(args: argparse.Namespace, runtime: Runtime) -> int:
    try:
        return args.handler(runtime, args)
    except ConfigurationError as exc:
        runtime.console.error(str(exc))
        if exc.hint:
            runtime.console.line(exc.hint)
    except ExternalCallError as exc:
        runtime.console.error(str(exc))
        if exc.raw:
            runtime.console.line(f"Response: {exc.raw}")
    except (AmbiguousExperimentError, ExperimentExistsError, ExperimentNotFoundError) as exc:
        runtime.console.error(str(exc))
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = ConsoleUI(enabled=not args.quiet)
    cwd = Path.cwd()
    try:
        config = load_config(Path(args.config) if args.config else None, cwd=cwd)
    except ConfigurationError as exc:
        console.error(str(exc))
        if exc.hint:
            console.line(exc.hint)
        return 1
    return run(args, Runtime(config=config, console=console, cwd=cwd))


if __name__ == "__main__":
    raise SystemExit(main())
