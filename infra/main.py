from __future__ import annotations

import os
from typing import Any, Dict, Optional

import aws_cdk as cdk

from infra.stack import PipesTestStack
from logging_config import configure_logging
from settings import Settings, get_settings


def create_app(settings: Optional[Settings] = None, outdir: Optional[str] = None) -> cdk.App:
    configure_logging()
    settings = settings or get_settings()
    app = cdk.App(outdir=outdir)
    env = cdk.Environment(
        account=app.node.try_get_context("account") or os.getenv("CDK_DEFAULT_ACCOUNT"),
        region=app.node.try_get_context("region") or os.getenv("CDK_DEFAULT_REGION"),
    )
    PipesTestStack(
        app,
        settings.stack_name,
        settings=settings,
        env=env,
        description="EventBridge Pipes test: SNS topic to SQS queue to Step Functions to DynamoDB",
    )
    return app


def synth_template(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Synthesize the app and return the stack's CloudFormation template."""
    settings = settings or get_settings()
    assembly = create_app(settings).synth()
    return assembly.get_stack_by_name(settings.stack_name).template


if __name__ == "__main__":
    create_app().synth()
