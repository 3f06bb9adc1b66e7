from framingham_risk.pipeline import PipelineRunner


def main() -> None:
    """Run the full Framingham CHD risk pipeline."""
    runner = PipelineRunner("config/default.yaml")
    runner.run()


if __name__ == "__main__":
    main()
