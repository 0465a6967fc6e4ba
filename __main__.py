import pulumi
from config import load_config
from wordpress_asg import WordPressAutoscalingBuilder


def main():
    # Load YAML configuration
    config = load_config("config.yaml")

    try:
        builder = WordPressAutoscalingBuilder(config)
    except Exception as e:
        pulumi.log.error(f"Failed to initialize WordPressAutoscalingBuilder: {e}")
        raise

    try:
        builder.build()
    except Exception as e:
        pulumi.log.error(f"Failed during resource build: {e}")
        raise

    # Export created resources
    for name, resource in builder.resources.items():
        try:
            pulumi.export(name, resource.id)
        except Exception as e:
            pulumi.log.warn(f"Failed to export resource '{name}': {e}")

    pulumi.export("autoscaling_group_name", builder.resources["autoscaling_group"].name)
    pulumi.export("security_group_id", builder.resources["security_group"].id)


if __name__ == "__main__":
    main()
