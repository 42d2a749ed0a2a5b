"""FastAPI web application for ComposerFix."""

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from composerfix.models import Outcome
from composerfix.oracle import NativeOracle
from composerfix.script import render_upgrade_script
from composerfix.selector import select_safe_version

app = FastAPI(
    title="ComposerFix",
    description="Safe-upgrade selection for Composer packages with security advisories",
    version="0.1.0",
)


class SelectRequest(BaseModel):
    """Request model for choosing a safe version."""
    package: str
    installed_version: str
    ranges: list[str]
    versions: list[str]
    allow_major: bool = False


class CandidateModel(BaseModel):
    version: str
    verdict: str
    matched_range: str | None = None


class SelectResponse(BaseModel):
    """Response model for a safe-version decision."""
    package: str
    outcome: str
    version: str | None = None
    requirement: str | None = None
    reason: str
    ranges: list[str]
    checks: list[CandidateModel]


class Requirement(BaseModel):
    package: str
    constraint: str


class ScriptRequest(BaseModel):
    """Request model for rendering an upgrade script."""
    requirements: list[Requirement] = Field(default_factory=list)
    comment: str | None = None


@app.post("/api/select", response_model=SelectResponse)
async def select_version(request: SelectRequest):
    """Choose the first safe, policy-compatible version."""
    if not request.package.strip():
        raise HTTPException(status_code=400, detail="No package provided")
    if not request.installed_version.strip():
        raise HTTPException(status_code=400, detail="No installed version provided")

    selection = select_safe_version(
        request.package,
        request.installed_version,
        request.ranges,
        request.versions,
        NativeOracle(),
        allow_major=request.allow_major,
    )

    return SelectResponse(
        package=selection.package,
        outcome=selection.outcome.value,
        version=selection.version,
        requirement=f"{selection.package}:{selection.version}" if selection.outcome == Outcome.SELECTED else None,
        reason=selection.reason,
        ranges=selection.ranges,
        checks=[
            CandidateModel(version=c.version, verdict=c.verdict.value, matched_range=c.matched_range)
            for c in selection.checks
        ],
    )


@app.post("/api/upgrade-script", response_class=PlainTextResponse)
async def upgrade_script(request: ScriptRequest):
    """Render a bash script replaying the given requirements in one batch."""
    for requirement in request.requirements:
        if not requirement.package.strip() or not requirement.constraint.strip():
            raise HTTPException(status_code=400, detail="Each requirement needs a package and a constraint")

    return render_upgrade_script(
        [(r.package, r.constraint) for r in request.requirements],
        comment=request.comment,
    )
