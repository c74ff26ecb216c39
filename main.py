# main.py
from __future__ import annotations
import structlog
from app.controller.runtime import ScanRuntime
from app.detector.config import ScanDetectorConfig
from app.logging_config import configure_logging

def main() -> None:
    configure_logging(debug=True)
    log = structlog.get_logger()

    log.info("app.start", msg="Launching Scan Guard")
    rt = ScanRuntime(config=ScanDetectorConfig.from_env())
    rt.start()
    try:
        while not rt.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        rt.stop()
    log.info("app.stop", msg="Exited cleanly")

if __name__ == "__main__":
    main()
