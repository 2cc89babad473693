# Configuration defaults

# Physical printing
LAYER_HEIGHT = 0.12  # Default layer height in mm
FIRST_LAYER_HEIGHT = 0.2  # Default first layer height in mm
BASE_THICKNESS = 0.6  # Minimum foundation thickness in mm

# TD scaling: backlit prints use the measured TD as-is, frontlit prints
# behave optically like a much shorter effective TD.
BACKLIT_TD_SCALE = 1.0
FRONTLIT_TD_SCALE = 0.1

# Transition zones
DELTA_E_THRESHOLD = 2.3  # "Just noticeable difference"
FOUNDATION_TD_FACTOR = 1.3  # 0.1 ** 1.3 ~= 5% transmission
TRANSITION_TD_CAP = 0.7  # Max zone thickness as a fraction of TD
OPACITY_STOP = 0.85  # Stop a zone once it is this opaque
MAX_TRANSITION_STEPS = 500  # Coarser steps beyond this many layers

# Image clustering
MAX_CLUSTERS = 32
CLUSTER_THRESHOLD = 5.0

# Scoring
MAX_PALETTE_LAYERS = 500
DEDUPE_THRESHOLD = 3.0
SPREAD_PENALTY = 5.0
LAYER_PENALTY = 0.5
WASTE_PENALTY = 1.5
MATCH_THRESHOLD = 15.0  # Palette entries matched above this are still "wasted"

# Optimizer
EXHAUSTIVE_MAX_FILAMENTS = 6
ANNEALING_MAX_FILAMENTS = 10
GREEDY_MIN_IMPROVEMENT = 0.5
SA_TEMPERATURE = 100.0
SA_COOLING_RATE = 0.995
SA_MIN_TEMPERATURE = 0.01
GA_MUTATION_RATE = 0.1
GA_MAX_GENERATIONS = 100
GA_MAX_STAGNANT = 20
GA_TOURNAMENT_SIZE = 3
MAX_EXTRA_SWAPS = 4
MIN_SWAP_IMPROVEMENT = 2.0

# Result cache
CACHE_CAPACITY = 100
