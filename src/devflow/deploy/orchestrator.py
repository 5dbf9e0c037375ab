"""Deploy orchestrator: start remote pipelines and follow them to completion."""

from __future__ import annotations

import json
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..api import ApiClient
from ..config import DeployConfig
from ..interaction import (
    InputType,
    InteractionRequest,
    QuestionCategory,
    UserInteractionHandler,
)
from ..utils.logging import get_logger
from .build_id import is_conflict, parse_build_id, parse_conflict_build_id
from .models import DeployStatus, DeploymentRecord, ProjectDescriptor, is_terminal, status_text
from .poller import PollingLoop, TimerFactory
from .registry import DeploymentRegistry

logger = get_logger(__name__)

SEARCH_PROJECT_API = "/local-faw/api/project/business/searchProject"
PROJECT_DETAIL_API = "/local-faw/api/devCenter/api/project"
PROJECT_APPLICATION_API = "/local-faw/api/devCenter/yq/project/{project_id}"
START_PIPELINE_API = "/local-faw/api/buildService/api/app/build/startPipeline"
BUILD_DETAIL_API = "/local-faw/api/buildService/api/app/build/detail"
ABORT_PIPELINE_API = "/local-faw/api/buildService/api/app/build/abortPipeline"

FRONT_CLASSIFY = "front"

ACTION_REMOVE = "Remove"
ACTION_ABORT = "Abort deployment"
ACTION_REFRESH = "Refresh status"


class DeployOrchestrator:
    """Owns the deployment registry and the polling loop."""

    def __init__(
        self,
        client: ApiClient,
        config: DeployConfig,
        interaction_handler: UserInteractionHandler,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self.client = client
        self.config = config
        self.interaction_handler = interaction_handler
        self.registry = DeploymentRegistry()
        self.poller = PollingLoop(
            self.poll_pending, config.poll_interval, timer_factory=timer_factory
        )

    # ------------------------------------------------------------------
    # Remote lookups
    # ------------------------------------------------------------------

    def search_projects(self, keyword: Optional[str] = None) -> List[ProjectDescriptor]:
        self._log(f"🔍 Searching projects, keyword: {keyword or 'all'}")
        params = {"type": "project", "pageNum": 1, "pageSize": self.config.page_size}
        if keyword:
            params["keyword"] = keyword

        response = self.client.request(SEARCH_PROJECT_API, "GET", params=params)
        if not response.success:
            self._log(f"❌ Project search failed: {response.message or 'unknown error'}")
            return []

        items = response.data.get("list") if isinstance(response.data, dict) else None
        if not isinstance(items, list):
            self._log("❌ Project search returned no list")
            return []

        projects = [ProjectDescriptor.from_payload(item) for item in items if isinstance(item, dict)]
        self._log(f"✅ Found {len(projects)} projects")
        for index, project in enumerate(projects, 1):
            logger.debug("Project %d: %s", index, json.dumps(project.raw, ensure_ascii=False))
            self._log(f"  {index}. {project.business_project_name} (ID: {project.business_project_id})")
        return projects

    def resolve_application_code(self, project_id: str) -> Optional[str]:
        """Business project -> internal project id -> front-end application code."""
        project_response = self.client.request(
            PROJECT_DETAIL_API,
            "GET",
            params={
                "businessProjectId": project_id,
                "pageNum": 1,
                "pageSize": self.config.page_size,
                "filters": "showDelete=false",
            },
        )
        if not project_response.success or not isinstance(project_response.data, dict):
            logger.info("Project lookup failed for %s: %s", project_id, project_response.message)
            return None
        project_list = project_response.data.get("list")
        first = project_list[0] if isinstance(project_list, list) and project_list else None
        if not isinstance(first, dict) or not first.get("id"):
            logger.info("No internal project found for %s", project_id)
            return None

        biz_project_id = first["id"]
        app_response = self.client.request(
            PROJECT_APPLICATION_API.format(project_id=biz_project_id),
            "GET",
            params={"bizProjectId": biz_project_id, "relationType": 1},
        )
        if not app_response.ok_with("applicationClassifies"):
            logger.info("Application lookup failed for %s: %s", biz_project_id, app_response.message)
            return None

        classifies = app_response.data["applicationClassifies"]
        if not isinstance(classifies, list):
            logger.info("Unexpected application payload for %s", biz_project_id)
            return None

        for classify in classifies:
            if not isinstance(classify, dict) or classify.get("applicationClassify") != FRONT_CLASSIFY:
                continue
            applications = classify.get("applications")
            first_app = applications[0] if isinstance(applications, list) and applications else None
            if isinstance(first_app, dict) and first_app.get("nameEn"):
                return str(first_app["nameEn"])
            return None
        return None

    # ------------------------------------------------------------------
    # Pipeline lifecycle
    # ------------------------------------------------------------------

    def start_pipeline(self, application_code: str) -> bool:
        active = self.registry.find_active(application_code)
        if active is not None:
            self.interaction_handler.notify(
                f"{application_code} is already deploying (build {active.build_id}); abort it first",
                "warning",
            )
            return False

        response = self.client.request(
            START_PIPELINE_API,
            "POST",
            body={
                "applicationCode": application_code,
                "environmentType": self.config.environment_type,
            },
        )

        build_id: Optional[int] = None
        if response.ok_with("buildId"):
            build_id = parse_build_id(response.data["buildId"])
            if build_id is None:
                self.interaction_handler.notify(
                    f"Pipeline start failed: unexpected build id {response.data['buildId']!r}", "error"
                )
                return False
        elif is_conflict(response.code):
            # 远端已有运行中的流水线，从提示信息里取回 buildId
            build_id = parse_conflict_build_id(response.message)
            if build_id is not None:
                self._log(f"♻️  Pipeline already running remotely, tracking build {build_id}")

        if build_id is None:
            self.interaction_handler.notify(
                f"Pipeline start failed: {response.message or 'unknown error'}", "error"
            )
            return False

        if not self.registry.add(DeploymentRecord(build_id=build_id, application_name=application_code)):
            self.interaction_handler.notify(
                f"{application_code} is already deploying; abort it first", "warning"
            )
            return False
        logger.info("Tracking build %s for %s", build_id, application_code)
        self.poller.kick()
        return True

    def poll_once(self, build_id: int) -> Optional[DeployStatus]:
        """Fetch one build's detail and merge it into the registry."""
        response = self.client.request(BUILD_DETAIL_API, "POST", body={"buildId": build_id})
        if not response.success or not isinstance(response.data, dict):
            logger.warning("Polling build %s failed: %s", build_id, response.message)
            return None

        merged = self.registry.merge(build_id, response.data)
        if merged is None:
            logger.debug("Build %s is no longer tracked", build_id)
            return DeployStatus.parse(response.data.get("status"))

        previous, record = merged
        if record.is_terminal and not is_terminal(previous):
            self._notify_finished(record)
        return record.status

    def poll_pending(self) -> bool:
        """One polling tick: fan out over pending records, then report whether any remain."""
        pending = self.registry.pending_ids()
        if not pending:
            return False
        # 每条未结束的记录各占一个线程，一轮最多等待一次请求超时
        with ThreadPoolExecutor(max_workers=len(pending), thread_name_prefix="deploy-poll") as executor:
            list(executor.map(self.poll_once, pending))
        return self.registry.has_pending()

    def abort_pipeline(self, build_id: int) -> bool:
        record = self.registry.get(build_id)
        if record is None:
            self.interaction_handler.notify(f"Deployment {build_id} not found", "warning")
            return False

        self.registry.set_loading(build_id, True)
        try:
            response = self.client.request(
                ABORT_PIPELINE_API,
                "POST",
                body={
                    "buildId": build_id,
                    "applicationCode": record.application_name,
                    "environmentType": self.config.environment_type,
                },
            )
        finally:
            self.registry.set_loading(build_id, False)

        if not response.success:
            self.interaction_handler.notify(
                f"Abort failed: {response.message or 'unknown error'}", "error"
            )
            return False

        self._log(f"🛑 Abort requested for build {build_id}")
        self.poll_once(build_id)
        return True

    def remove_record(self, build_id: int) -> bool:
        record = self.registry.get(build_id)
        if record is None:
            self.interaction_handler.notify(f"Deployment {build_id} not found", "warning")
            return False
        if not self.registry.remove(build_id):
            self.interaction_handler.notify(
                f"{record.application_name} is still deploying and cannot be removed", "warning"
            )
            return False
        self.interaction_handler.notify("Deployment removed", "info")
        return True

    def refresh(self, build_id: int) -> Optional[DeployStatus]:
        status = self.poll_once(build_id)
        self.interaction_handler.notify("Status refreshed", "info")
        return status

    def records(self) -> List[DeploymentRecord]:
        return self.registry.snapshot()

    def wait_until_idle(self, check_every: float = 1.0, timeout: Optional[float] = None) -> bool:
        """Block until nothing is pending; False on timeout or if polling stopped."""
        deadline = time.monotonic() + timeout if timeout is not None else None
        while self.registry.has_pending():
            if self.poller.closed or not self.poller.active:
                return False
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(check_every)
        return True

    def dispose(self) -> None:
        self.poller.cancel()

    # ------------------------------------------------------------------
    # Interactive flows
    # ------------------------------------------------------------------

    def run_deploy_flow(self, keyword: Optional[str] = None) -> bool:
        self._log("🚀 Starting deployment flow...")

        projects = self.search_projects(keyword)
        if not projects:
            self.interaction_handler.notify("No projects available", "error")
            return False

        response = self.interaction_handler.ask(
            InteractionRequest(
                question="Select the project to deploy",
                title="Environment deployment",
                options=[project.label for project in projects],
                descriptions=[f"ID: {project.business_project_id or 'N/A'}" for project in projects],
            )
        )
        if response.index is None:
            self._log("❌ Selection cancelled")
            return False

        project = projects[response.index]
        self._log(f"📋 Selected project: {project.label}")
        if not project.business_project_id:
            self.interaction_handler.notify(
                "Project has no id, cannot resolve its application code", "error"
            )
            return False

        self._log("🔍 Resolving application code...")
        application_code = self.resolve_application_code(project.business_project_id)
        if not application_code:
            self.interaction_handler.notify(
                "No application code found, check the project configuration", "error"
            )
            return False
        self._log(f"📦 Application code: {application_code}")

        confirm = self.interaction_handler.ask(
            InteractionRequest(
                question=(
                    f"Deploy {project.label} ({application_code}) "
                    f"to {self.config.environment_type}?"
                ),
                input_type=InputType.CONFIRM,
                category=QuestionCategory.CONFIRMATION,
            )
        )
        if not confirm.confirmed:
            self._log("❌ Deployment cancelled")
            return False

        self._log("🚀 Starting pipeline...")
        if not self.start_pipeline(application_code):
            return False
        self._log("✅ Pipeline started, watching progress...")
        self.interaction_handler.notify(f"{project.label} deployment started", "info")
        return True

    def manage_deployments(self) -> None:
        records = self.records()
        if not records:
            self.interaction_handler.notify("No deployments yet", "info")
            return

        response = self.interaction_handler.ask(
            InteractionRequest(
                question="Select a deployment",
                title="Deployments",
                options=[record.application_name for record in records],
                descriptions=[_describe(record) for record in records],
            )
        )
        if response.index is None:
            return
        self._run_action(records[response.index])

    def _run_action(self, record: DeploymentRecord) -> None:
        actions = [ACTION_REMOVE if record.is_terminal else ACTION_ABORT, ACTION_REFRESH]
        response = self.interaction_handler.ask(
            InteractionRequest(
                question=f"Action for {record.application_name}",
                title="Deployment actions",
                options=actions,
            )
        )
        if response.cancelled or not response.value:
            return

        if response.value == ACTION_REMOVE:
            self.remove_record(record.build_id)
        elif response.value == ACTION_ABORT:
            confirm = self.interaction_handler.ask(
                InteractionRequest(
                    question=f"Abort the deployment of {record.application_name}?",
                    input_type=InputType.CONFIRM,
                    category=QuestionCategory.CONFIRMATION,
                )
            )
            if confirm.confirmed:
                self.abort_pipeline(record.build_id)
        elif response.value == ACTION_REFRESH:
            self.refresh(record.build_id)

    # ------------------------------------------------------------------

    def _notify_finished(self, record: DeploymentRecord) -> None:
        message = f"{record.application_name} deployment finished: {status_text(record.status)}"
        self._log(message)
        level = "info" if record.status == DeployStatus.DONE else "warning"
        self.interaction_handler.notify(message, level)

    def _log(self, message: str) -> None:
        logger.debug(message)
        self.interaction_handler.log(message)


def _describe(record: DeploymentRecord) -> str:
    parts = [f"build {record.build_id}", status_text(record.status)]
    if record.creator:
        parts.append(f"by {record.creator}")
    if record.loading:
        parts.append("aborting...")
    return " | ".join(parts)
