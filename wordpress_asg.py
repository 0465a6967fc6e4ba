import pulumi
import pulumi_aws as aws
from typing import Any, Dict, List, Optional

from config import AlarmConfig, Config
from user_data import user_data_output

AWS_REGION_ABBREVIATIONS = {
    "us-east-1": "use1",
    "us-east-2": "use2",
    "us-west-1": "usw1",
    "us-west-2": "usw2",
    "af-south-1": "afs1",
    "ap-east-1": "ape1",
    "ap-south-1": "aps1",
    "ap-northeast-1": "apne1",
    "ap-northeast-2": "apne2",
    "ap-northeast-3": "apne3",
    "ap-southeast-1": "apse1",
    "ap-southeast-2": "apse2",
    "ca-central-1": "cac1",
    "eu-central-1": "euc1",
    "eu-west-1": "euw1",
    "eu-west-2": "euw2",
    "eu-west-3": "euw3",
    "eu-north-1": "eun1",
    "eu-south-1": "eus1",
    "me-south-1": "mes1",
    "sa-east-1": "sae1",
    "us-gov-east-1": "usge1",
    "us-gov-west-1": "usgw1",
    "cn-north-1": "cnn1",
    "cn-northwest-1": "cnnw1",
}

AMAZON_LINUX_2_AMI_NAME = "amzn2-ami-hvm-*-x86_64-gp2"
CPU_METRIC = "CPUUtilization"
CPU_NAMESPACE = "AWS/EC2"


def resolve_value(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("secret:"):
        # Fetch secret from Pulumi config
        secret_key = value[len("secret:"):]
        config = pulumi.Config()
        return config.require_secret(secret_key)
    return value


def get_abbreviation(region: str) -> str:
    return AWS_REGION_ABBREVIATIONS.get(region.lower(), region.split("-")[0].lower())


class WordPressAutoscalingBuilder:
    """
    Declares the WordPress web tier: security group, launch configuration,
    Auto Scaling group, and a CPU driven scale-out/scale-in pair of
    policies with their CloudWatch alarms.
    """

    def __init__(self, config: Config):
        self.config = config
        self.resources: Dict[str, Any] = {}
        self.provider: Optional[aws.Provider] = None

    def generate_resource_name(self, base_name: str) -> str:
        team = self.config.team.strip().lower()
        service = self.config.service.strip().lower()
        env = self.config.environment.strip().lower()
        reg_abbr = get_abbreviation(self.config.region)
        return f"{team}-{service}-{env}-{reg_abbr}-{base_name}".lower()

    def tags_for(self, base_name: str) -> Dict[str, str]:
        tags = dict(self.config.tags)
        tags.setdefault("Name", self.generate_resource_name(base_name))
        return tags

    def build_provider(self) -> aws.Provider:
        """Pin every resource and lookup to the configured region."""
        name = self.generate_resource_name("aws")
        self.provider = aws.Provider(name, region=self.config.region)
        pulumi.log.info(f"Created provider: {name} (region {self.config.region})")
        return self.provider

    def resource_opts(self) -> pulumi.ResourceOptions:
        return pulumi.ResourceOptions(provider=self.provider)

    def invoke_opts(self) -> pulumi.InvokeOptions:
        return pulumi.InvokeOptions(provider=self.provider)

    # Lookups

    def lookup_vpc_id(self) -> pulumi.Input[str]:
        network = self.config.network
        if network.vpc_id:
            return network.vpc_id
        vpc = aws.ec2.get_vpc(default=True, opts=self.invoke_opts())
        pulumi.log.info(f"No vpc_id configured, using default VPC '{vpc.id}'")
        return vpc.id

    def lookup_subnet_ids(self, vpc_id: pulumi.Input[str]) -> List[str]:
        network = self.config.network
        if network.subnet_ids is not None:
            return list(network.subnet_ids)
        subnets = aws.ec2.get_subnets(filters=[
            aws.ec2.GetSubnetsFilterArgs(name="vpc-id", values=[vpc_id]),
        ], opts=self.invoke_opts())
        if not subnets.ids:
            raise ValueError(f"No subnets found in VPC '{vpc_id}'")
        pulumi.log.info(f"No subnet_ids configured, using {len(subnets.ids)} subnets of VPC '{vpc_id}'")
        return list(subnets.ids)

    def lookup_ami_id(self) -> str:
        if self.config.launch.ami_id:
            return self.config.launch.ami_id
        ami = aws.ec2.get_ami(
            most_recent=True,
            owners=["amazon"],
            filters=[aws.ec2.GetAmiFilterArgs(name="name", values=[AMAZON_LINUX_2_AMI_NAME])],
            opts=self.invoke_opts(),
        )
        pulumi.log.info(f"No ami_id configured, using latest Amazon Linux 2 AMI '{ami.id}'")
        return ami.id

    # Resources

    def build_security_group(self, vpc_id: pulumi.Input[str]) -> aws.ec2.SecurityGroup:
        network = self.config.network
        ingress = [
            aws.ec2.SecurityGroupIngressArgs(
                description="HTTP",
                protocol="tcp",
                from_port=80,
                to_port=80,
                cidr_blocks=network.http_cidr_blocks,
            ),
        ]
        if network.ssh_cidr_blocks:
            ingress.append(aws.ec2.SecurityGroupIngressArgs(
                description="SSH",
                protocol="tcp",
                from_port=22,
                to_port=22,
                cidr_blocks=network.ssh_cidr_blocks,
            ))
        name = self.generate_resource_name("web-sg")
        sg = aws.ec2.SecurityGroup(
            name,
            description="WordPress web servers",
            vpc_id=vpc_id,
            ingress=ingress,
            egress=[aws.ec2.SecurityGroupEgressArgs(
                protocol="-1",
                from_port=0,
                to_port=0,
                cidr_blocks=["0.0.0.0/0"],
            )],
            tags=self.tags_for("web-sg"),
            opts=self.resource_opts(),
        )
        self.resources["security_group"] = sg
        pulumi.log.info(f"Created resource: {name} (ec2.SecurityGroup)")
        return sg

    def launch_user_data(self) -> pulumi.Output:
        db_password = resolve_value(self.config.wordpress.db_password)
        return user_data_output(self.config.wordpress, db_password)

    def build_launch_configuration(self, security_group: aws.ec2.SecurityGroup, ami_id: str) -> aws.ec2.LaunchConfiguration:
        launch = self.config.launch
        name = self.generate_resource_name("web-lc")
        lc = aws.ec2.LaunchConfiguration(
            # Launch configurations are immutable; the auto-name suffix lets
            # the replacement exist next to the old one during an update.
            name,
            image_id=ami_id,
            instance_type=launch.instance_type,
            key_name=launch.key_name,
            security_groups=[security_group.id],
            associate_public_ip_address=launch.associate_public_ip_address,
            root_block_device=aws.ec2.LaunchConfigurationRootBlockDeviceArgs(
                volume_type="gp2",
                volume_size=launch.root_volume_size,
                delete_on_termination=True,
            ),
            user_data=self.launch_user_data(),
            opts=self.resource_opts(),
        )
        self.resources["launch_configuration"] = lc
        pulumi.log.info(f"Created resource: {name} (ec2.LaunchConfiguration)")
        return lc

    def build_autoscaling_group(self, launch_configuration: aws.ec2.LaunchConfiguration, subnet_ids: List[str]) -> aws.autoscaling.Group:
        asg_cfg = self.config.autoscaling
        name = self.generate_resource_name("web-asg")
        tags = [
            aws.autoscaling.GroupTagArgs(key=key, value=value, propagate_at_launch=True)
            for key, value in self.tags_for("web").items()
        ]
        asg = aws.autoscaling.Group(
            name,
            launch_configuration=launch_configuration.name,
            vpc_zone_identifiers=subnet_ids,
            min_size=asg_cfg.min_size,
            max_size=asg_cfg.max_size,
            desired_capacity=asg_cfg.desired_capacity,
            health_check_type=asg_cfg.health_check_type,
            health_check_grace_period=asg_cfg.health_check_grace_period,
            target_group_arns=asg_cfg.target_group_arns,
            tags=tags,
            opts=self.resource_opts(),
        )
        self.resources["autoscaling_group"] = asg
        pulumi.log.info(f"Created resource: {name} (autoscaling.Group)")
        return asg

    def build_scaling_policy(self, direction: str, alarm: AlarmConfig, asg: aws.autoscaling.Group) -> aws.autoscaling.Policy:
        name = self.generate_resource_name(f"{direction}-policy")
        policy = aws.autoscaling.Policy(
            name,
            autoscaling_group_name=asg.name,
            policy_type="SimpleScaling",
            adjustment_type="ChangeInCapacity",
            scaling_adjustment=alarm.adjustment,
            cooldown=alarm.cooldown,
            opts=self.resource_opts(),
        )
        self.resources[f"{direction.replace('-', '_')}_policy"] = policy
        pulumi.log.info(f"Created resource: {name} (autoscaling.Policy)")
        return policy

    def build_cpu_alarm(
        self,
        direction: str,
        alarm: AlarmConfig,
        comparison_operator: str,
        asg: aws.autoscaling.Group,
        policy: aws.autoscaling.Policy,
    ) -> aws.cloudwatch.MetricAlarm:
        name = self.generate_resource_name(f"{direction}-cpu-alarm")
        symbol = ">" if comparison_operator == "GreaterThanThreshold" else "<"
        metric_alarm = aws.cloudwatch.MetricAlarm(
            name,
            alarm_description=(
                f"Scale {direction.split('-')[1]} when average CPU {symbol} {alarm.threshold:g}% "
                f"for {alarm.evaluation_periods} x {alarm.period}s"
            ),
            comparison_operator=comparison_operator,
            evaluation_periods=alarm.evaluation_periods,
            metric_name=CPU_METRIC,
            namespace=CPU_NAMESPACE,
            period=alarm.period,
            statistic="Average",
            threshold=float(alarm.threshold),
            dimensions={"AutoScalingGroupName": asg.name},
            alarm_actions=[policy.arn],
            tags=self.tags_for(f"{direction}-cpu-alarm"),
            opts=self.resource_opts(),
        )
        self.resources[f"{direction.replace('-', '_')}_alarm"] = metric_alarm
        pulumi.log.info(f"Created resource: {name} (cloudwatch.MetricAlarm)")
        return metric_alarm

    def build(self):
        self.build_provider()
        vpc_id = self.lookup_vpc_id()
        subnet_ids = self.lookup_subnet_ids(vpc_id)
        ami_id = self.lookup_ami_id()

        sg = self.build_security_group(vpc_id)
        lc = self.build_launch_configuration(sg, ami_id)
        asg = self.build_autoscaling_group(lc, subnet_ids)

        out_policy = self.build_scaling_policy("scale-out", self.config.scale_out, asg)
        in_policy = self.build_scaling_policy("scale-in", self.config.scale_in, asg)
        self.build_cpu_alarm("scale-out", self.config.scale_out, "GreaterThanThreshold", asg, out_policy)
        self.build_cpu_alarm("scale-in", self.config.scale_in, "LessThanThreshold", asg, in_policy)
        return self.resources
