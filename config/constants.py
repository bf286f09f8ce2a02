
# Sentinelle "aucun segment" dans l'IndexMap (int32).
NO_SEGMENT = -1

# Octets par pixel des buffers de sortie du moteur (R, G, B, A).
RGBA_STRIDE = 4

# Surbrillance du segment survolé : rouge/bleu atténués, vert éclairci.
HIGHLIGHT_RED_FACTOR = 0.6
HIGHLIGHT_BLUE_FACTOR = 0.6
HIGHLIGHT_GREEN_FACTOR = 0.5
HIGHLIGHT_GREEN_OFFSET = 120.0

# Plages des paramètres de texture éditables: (min, max, pas)
TEXTURE_FIELD_RANGES = {
    "rotation": (-180.0, 180.0, 1.0),
    "scale": (0.2, 5.0, 0.05),
    "offset_x": (-2.0, 2.0, 0.05),
    "offset_y": (-2.0, 2.0, 0.05),
}

TEXTURE_FIELD_LABELS = {
    "rotation": "Rotation",
    "scale": "Scale",
    "offset_x": "Offset X",
    "offset_y": "Offset Y",
}

# Paramètres appliqués à une nouvelle texture (name=1 côté moteur).
DEFAULT_TEXTURE_NAME = 1
DEFAULT_TEXTURE_SCALE = 1.0

# Textures d'exemple proposées dans le sélecteur (échelle en mètres).
TEXTURE_SAMPLES = [
    {"path": "assets/samples/textures/1.jpg", "scale": 1.0},
    {"path": "assets/samples/textures/2.jpg", "scale": 1.0},
]

TEXTURE_FILE_FILTER = "Textures (*.png *.jpg *.jpeg);;All Files (*)"
BUNDLE_FILE_FILTER = "Viz2d bundle (*.viz2d);;All Files (*)"

# Variable d'environnement donnant le moteur de rendu ("package.module:Classe").
ENGINE_ENV_VAR = "VISUALIZER_ENGINE"

CANVAS_BACKGROUND = "#202020"
CANVAS_FOREGROUND = "#bbbbbb"
