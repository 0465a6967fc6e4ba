import copy

import pulumi
import pytest

from config import parse_config

PROJECT = "wordpress-asg"
DEFAULT_SUBNETS = ["subnet-aaaa1111", "subnet-bbbb2222"]


class WordPressMocks(pulumi.runtime.Mocks):
    """Echoes resource inputs back as outputs and answers the AWS lookups."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.calls = []
        self.registered = []
        self.subnet_ids = list(DEFAULT_SUBNETS)

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.registered.append((args.typ, args.name, args.provider, dict(args.inputs)))
        outputs = dict(args.inputs)
        if args.typ.startswith("pulumi:providers:"):
            return [f"{args.name}_id", outputs]
        outputs.setdefault("name", args.name)
        outputs.setdefault("arn", f"arn:aws:mock:us-east-1:123456789012:{args.name}")
        return [f"{args.name}_id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        self.calls.append((args.token, dict(args.args), args.provider))
        if args.token == "aws:ec2/getAmi:getAmi":
            return {"id": "ami-0mock1234", "architecture": "x86_64"}
        if args.token == "aws:ec2/getVpc:getVpc":
            return {"id": "vpc-default"}
        if args.token == "aws:ec2/getSubnets:getSubnets":
            return {"id": "us-east-1", "ids": self.subnet_ids}
        return {}

    def tokens(self):
        return [call[0] for call in self.calls]


MOCKS = WordPressMocks()
pulumi.runtime.set_mocks(MOCKS, project=PROJECT, stack="test", preview=False)
pulumi.runtime.set_all_config({f"{PROJECT}:dbPassword": "s3cr3t-from-config"})

BASE_CONFIG = {
    "team": "Web",
    "service": "WordPress",
    "environment": "dev",
    "region": "us-east-1",
    "tags": {"Project": "wordpress-autoscaling"},
    "network": {
        "vpc_id": "vpc-0123",
        "subnet_ids": ["subnet-1", "subnet-2"],
    },
    "launch": {"ami_id": "ami-0fixed", "instance_type": "t3.small"},
    "wordpress": {"db_host": "db.internal", "db_password": "plain-pass"},
}


@pytest.fixture
def mocks():
    MOCKS.reset()
    return MOCKS


@pytest.fixture
def config_data():
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def make_config(config_data):
    def _make(**overrides):
        data = copy.deepcopy(config_data)
        data.update(overrides)
        return parse_config(data)
    return _make
