#!/usr/bin/env python3
"""
AWS Account Hardening - CloudTrail, Config and Slack alerting baseline

Select a variant with `cdk synth -c variant=1|2|3` (default 3) and a
conformance pack with `-c conformance_pack=cloudtrail|s3|api-gateway`.
"""
import os

import aws_cdk as cdk
from dotenv import load_dotenv

from account_hardening.hardening_stack import create_stack

# Slack ids come from .env when present
load_dotenv()

app = cdk.App()

env = cdk.Environment(
    account=os.getenv('CDK_DEFAULT_ACCOUNT'),
    region=os.getenv('CDK_DEFAULT_REGION')
)

create_stack(app, "HardeningStack", env=env)

app.synth()
