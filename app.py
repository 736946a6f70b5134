#!/usr/bin/env python3
"""AWS CDK entrypoint for the TG Assistant messaging backbone.

The target environment comes from the ``environment`` (or ``ENV_NAME``)
context value, falling back to ``defaultEnvironment`` and then ``dev``. Each
environment entry lives under ``context.environments`` in cdk.json. Export
``AWS_ACCOUNT_ID`` to have the deployment refuse a mismatched account.
"""
import os

import aws_cdk as cdk

from deployment.orchestrator import provision

app = cdk.App()

environment_name = app.node.try_get_context("environment")
if environment_name is None:
    environment_name = app.node.try_get_context("ENV_NAME")

provision(
    app,
    environments=app.node.try_get_context("environments"),
    environment_name=environment_name,
    default_environment=app.node.try_get_context("defaultEnvironment"),
    provided_account_id=os.getenv("AWS_ACCOUNT_ID"),
    log_level=os.getenv("LOG_LEVEL"),
)

app.synth()
