import argparse
import logging
import os
import sys

from PyQt6.QtWidgets import QApplication

from config.constants import ENGINE_ENV_VAR
from config.logging_config import configure_logging
from controllers.master_controller import MasterController
from services.engine import load_engine_factory


def parse_args(argv):
    parser = argparse.ArgumentParser(description="Visualiseur de textures par segment.")
    parser.add_argument(
        "--engine",
        default=os.environ.get(ENGINE_ENV_VAR, ""),
        help=f"Moteur de rendu 'package.module:Classe' (défaut: ${ENGINE_ENV_VAR})",
    )
    parser.add_argument("--bundle", help="Bundle à charger au démarrage")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args(sys.argv[1:])

    # Configuration du logging
    configure_logging(args.log_level, args.log_file)
    logger = logging.getLogger("main")

    try:
        engine_factory = load_engine_factory(args.engine)
    except (ImportError, ValueError) as exc:
        logger.error("Moteur de rendu indisponible: %s", exc)
        sys.exit(2)

    app = QApplication(sys.argv)

    # Créer le contrôleur principal
    master_controller = MasterController(engine_factory())
    app.aboutToQuit.connect(master_controller.shutdown)

    # Démarrer l'application
    master_controller.run()
    if args.bundle:
        master_controller.load_bundle_file(args.bundle)

    sys.exit(app.exec())
