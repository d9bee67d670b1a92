"""
FastAPI wrapper for the SEO Multi-Pass Optimizer - Vercel Serverless Function.

This module exposes issue detection and multi-pass optimization as a REST API
for deployment on Vercel.
"""

import logging
import os
from enum import Enum
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from seo_multipass_optimizer import __version__
from seo_multipass_optimizer.config import DetectorConfig, IntegrationConfig
from seo_multipass_optimizer.exceptions import OptimizationError
from seo_multipass_optimizer.integration import OptimizationIntegration
from seo_multipass_optimizer.issue_detector import IssueDetector
from seo_multipass_optimizer.models import Content

logger = logging.getLogger(__name__)

app = FastAPI(
    title="SEO Multi-Pass Optimizer API",
    description="Detects SEO issues in content and corrects them over multiple validated passes",
    version=__version__,
)

# Enable CORS for all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Tests and embedding applications may set this to a callable
# ``(IntegrationConfig) -> MultiPassOptimizer`` to supply their own providers.
app.state.optimizer_factory = None


class ImagePromptInput(BaseModel):
    """Planned image with generation prompt and alt text."""
    prompt: str
    alt: str = ""


class ContentInput(BaseModel):
    """Content record to analyze or optimize."""
    title: str = ""
    content: str = ""
    meta_description: str = ""
    focus_keyword: str = ""
    secondary_keywords: list[str] = Field(default_factory=list)
    excerpt: str = ""
    slug: str = ""
    tags: list[str] = Field(default_factory=list)
    image_prompts: list[ImagePromptInput] = Field(default_factory=list)
    internal_links: list[str] = Field(default_factory=list)

    def to_content(self) -> Content:
        return Content.from_dict(self.model_dump())


class IntegrationModeEnum(str, Enum):
    """Integration mode selection."""
    seamless = "seamless"  # Run the optimization loop
    manual = "manual"  # Detect and propose corrections only
    bypass = "bypass"  # Return the content untouched


class DetectRequest(BaseModel):
    """Request model for issue detection."""
    content: ContentInput
    focus_keyword: Optional[str] = Field(None, description="Overrides content.focus_keyword")
    existing_titles: list[str] = Field(default_factory=list, description="Titles checked for uniqueness")


class DetectResponse(BaseModel):
    """Detected issues and compliance score."""
    compliance_score: float
    is_compliant: bool
    total_issues: int
    critical_issues: int
    major_issues: int
    minor_issues: int
    issues: list[dict]
    metrics: dict


class OptimizeRequest(BaseModel):
    """Request model for optimization."""
    content: ContentInput
    focus_keyword: Optional[str] = Field(None, description="Overrides content.focus_keyword")
    mode: IntegrationModeEnum = Field(IntegrationModeEnum.seamless, description="Integration mode")
    max_iterations: int = Field(3, ge=1, le=10, description="Maximum correction passes")
    target_score: float = Field(95.0, ge=0, le=100, description="Target compliance score")
    fallback_to_original: bool = Field(True, description="Return the original content instead of failing")


class OptimizeResponse(BaseModel):
    """Response model for optimization results."""
    success: bool
    message: str
    status: str
    content: dict
    metadata: dict
    issues: list[dict] = Field(default_factory=list)
    prompts: list[dict] = Field(default_factory=list)
    optimization: Optional[dict] = None
    error_report: dict = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@app.post("/api/detect", response_model=DetectResponse)
async def detect_issues(request: DetectRequest):
    """
    Detect SEO issues in a content record.

    Pure analysis: no generation provider is called.
    """
    detector = IssueDetector(DetectorConfig(existing_titles=list(request.existing_titles)))
    result = detector.detect_all_issues(request.content.to_content(), request.focus_keyword)
    data = result.to_dict()
    return DetectResponse(
        compliance_score=data["compliance_score"],
        is_compliant=data["is_compliant"],
        total_issues=data["total_issues"],
        critical_issues=data["critical_issues"],
        major_issues=data["major_issues"],
        minor_issues=data["minor_issues"],
        issues=data["issues"],
        metrics=data["metrics"],
    )


@app.post("/api/optimize", response_model=OptimizeResponse)
async def optimize_content(request: OptimizeRequest):
    """
    Optimize a content record.

    In seamless mode the multi-pass loop runs against the configured
    generation provider; manual mode returns proposed corrections; bypass
    mode echoes the content back.
    """
    factory = app.state.optimizer_factory
    if (
        request.mode == IntegrationModeEnum.seamless
        and factory is None
        and not os.environ.get("ANTHROPIC_API_KEY")
    ):
        raise HTTPException(
            status_code=500,
            detail="ANTHROPIC_API_KEY environment variable not set",
        )

    config = IntegrationConfig(
        mode=request.mode.value,
        max_iterations=request.max_iterations,
        target_compliance_score=request.target_score,
        fallback_to_original=request.fallback_to_original,
    )
    integration = OptimizationIntegration(config, optimizer_factory=factory)

    try:
        result = integration.process_content(request.content.to_content(), request.focus_keyword)
    except OptimizationError as e:
        logger.error("Optimization failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    data = result.to_dict()
    return OptimizeResponse(
        success=result.status != "failed",
        message=_status_message(result.status, data["metadata"]),
        status=result.status,
        content=data["content"],
        metadata=data["metadata"],
        issues=data["issues"],
        prompts=data["prompts"],
        optimization=data.get("optimization"),
        error_report=data["error_report"],
    )


def _status_message(status: str, metadata: dict) -> str:
    if status == "optimized":
        return (
            f"Optimized in {metadata['passes']} passes "
            f"({metadata['termination_reason']}, score {metadata['score']})"
        )
    if status == "manual_review":
        return "Corrections proposed for manual review"
    if status == "bypassed":
        return "Optimizer bypassed, content returned unchanged"
    return f"Optimization failed: {metadata.get('error') or 'unknown error'}"


@app.get("/api/info")
async def api_info():
    """Get API information and usage instructions."""
    return {
        "name": "SEO Multi-Pass Optimizer API",
        "version": __version__,
        "description": "Multi-pass SEO issue detection and correction",
        "endpoints": {
            "GET /api/health": "Health check",
            "POST /api/detect": "Detect SEO issues and compute the compliance score",
            "POST /api/optimize": "Optimize content (seamless, manual or bypass mode)",
            "GET /api/info": "This endpoint",
        },
        "documentation": "/docs",
        "openapi": "/openapi.json",
    }
