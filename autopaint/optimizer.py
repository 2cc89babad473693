"""
Filament order optimizer.

Finds the filament sequence (order, subset and optionally repeats) whose
achievable palette best matches the image targets. Supports:
- Exhaustive search: every non-empty subset in every order (small sets)
- Greedy build: grow a sequence one filament at a time from every seed
- Simulated annealing: seeded, geometric cooling
- Genetic algorithm: seeded, elitism + tournament selection + order crossover
- Repeated swaps: insert extra filaments into the chosen sequence
- Result caching for explicitly seeded requests
"""

import itertools
import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .cache import OptimizerCache, make_cache_key
from .config import (
    ANNEALING_MAX_FILAMENTS,
    EXHAUSTIVE_MAX_FILAMENTS,
    FIRST_LAYER_HEIGHT,
    GA_MAX_GENERATIONS,
    GA_MAX_STAGNANT,
    GA_MUTATION_RATE,
    GA_TOURNAMENT_SIZE,
    GREEDY_MIN_IMPROVEMENT,
    LAYER_HEIGHT,
    MAX_EXTRA_SWAPS,
    MIN_SWAP_IMPROVEMENT,
    SA_COOLING_RATE,
    SA_MIN_TEMPERATURE,
    SA_TEMPERATURE,
)
from .errors import UnknownAlgorithmError
from .models import Filament, OptimizerResult, WeightedLabTarget
from .rng import SeededRandom, time_seed
from .scoring import ScoringContext, score_sequence
from .utils import timed

logger = logging.getLogger(__name__)

EXHAUSTIVE = 'exhaustive'
GREEDY = 'greedy'
SIMULATED_ANNEALING = 'simulated-annealing'
GENETIC = 'genetic'
AUTO = 'auto'

ALGORITHMS = (EXHAUSTIVE, GREEDY, SIMULATED_ANNEALING, GENETIC)

Order = Tuple[int, ...]


@dataclass(frozen=True)
class OptimizerOptions:
    algorithm: str = AUTO
    seed: Optional[int] = None  # explicit seed => reproducible and cacheable
    max_iterations: Optional[int] = None  # SA iterations / GA generations
    temperature: float = SA_TEMPERATURE
    cooling_rate: float = SA_COOLING_RATE
    min_temperature: float = SA_MIN_TEMPERATURE
    population_size: Optional[int] = None
    mutation_rate: float = GA_MUTATION_RATE
    elite_count: Optional[int] = None
    max_stagnant: int = GA_MAX_STAGNANT
    allow_repeated_swaps: bool = False
    max_extra_swaps: int = MAX_EXTRA_SWAPS
    min_swap_improvement: float = MIN_SWAP_IMPROVEMENT
    caching_enabled: bool = True

    def tunables(self) -> Tuple:
        """Every setting besides algorithm and seed that changes the outcome."""
        return (
            self.max_iterations, self.temperature, self.cooling_rate, self.min_temperature,
            self.population_size, self.mutation_rate, self.elite_count, self.max_stagnant,
            self.allow_repeated_swaps, self.max_extra_swaps, self.min_swap_improvement,
        )


def resolve_algorithm(algorithm: str, filament_count: int) -> str:
    """
    Map 'auto' to a concrete algorithm by problem size and reject unknown names.

    Up to 6 filaments are searched exhaustively, up to 10 by simulated
    annealing, anything larger by the genetic algorithm.
    """
    if algorithm == AUTO:
        if filament_count <= EXHAUSTIVE_MAX_FILAMENTS:
            return EXHAUSTIVE
        if filament_count <= ANNEALING_MAX_FILAMENTS:
            return SIMULATED_ANNEALING
        return GENETIC
    if algorithm not in ALGORITHMS:
        raise UnknownAlgorithmError(algorithm)
    return algorithm


def canonical_order(filaments: Sequence[Filament]) -> List[Filament]:
    """Sort filaments so results do not depend on the caller's list order."""
    return sorted(filaments, key=lambda f: (f.color.lower(), f.td, f.id))


class SequenceScorer:
    """Scores index sequences over a fixed filament list, memoizing repeats."""

    def __init__(self, filaments: Sequence[Filament], context: ScoringContext):
        self.filaments = list(filaments)
        self.context = context
        self._memo: Dict[Order, float] = {}

    def __call__(self, order: Sequence[int]) -> float:
        key = tuple(order)
        score = self._memo.get(key)
        if score is None:
            score = score_sequence([self.filaments[i] for i in key], self.context)
            self._memo[key] = score
        return score

    def to_filaments(self, order: Sequence[int]) -> Tuple[Filament, ...]:
        return tuple(self.filaments[i] for i in order)


def _trivial(scorer: SequenceScorer) -> Tuple[Order, float, int, bool]:
    n = len(scorer.filaments)
    if n == 0:
        return (), 0.0, 0, True
    return tuple(range(n)), scorer(tuple(range(n))), 1, True


# =============================================================================
# EXHAUSTIVE SEARCH
# =============================================================================

def search_exhaustive(scorer: SequenceScorer) -> Tuple[Order, float, int, bool]:
    """Try every permutation of every non-empty subset; returns (order, score, iterations, converged)."""
    n = len(scorer.filaments)
    if n <= 1:
        return _trivial(scorer)

    best_order: Order = tuple(range(n))
    best_score = math.inf
    iterations = 0

    for mask in range(1, 1 << n):
        subset = [i for i in range(n) if mask & (1 << i)]
        for perm in itertools.permutations(subset):
            iterations += 1
            score = scorer(perm)
            if score < best_score:
                best_score = score
                best_order = perm

    return best_order, best_score, iterations, True


# =============================================================================
# GREEDY BUILD
# =============================================================================

def search_greedy(scorer: SequenceScorer,
                  min_improvement: float = GREEDY_MIN_IMPROVEMENT) -> Tuple[Order, float, int, bool]:
    """
    Grow a sequence from every possible seed filament.

    Each step appends the remaining filament that lowers the score most and
    stops when the best addition improves by less than `min_improvement`.
    Not all filaments need to be used.
    """
    n = len(scorer.filaments)
    if n <= 1:
        return _trivial(scorer)

    best_order: Order = ()
    best_score = math.inf
    iterations = 0

    for start in range(n):
        sequence = [start]
        pool = [i for i in range(n) if i != start]
        current = scorer(sequence)
        iterations += 1

        while pool:
            step_idx, step_score = -1, current
            for k, candidate in enumerate(pool):
                iterations += 1
                score = scorer(sequence + [candidate])
                if score < step_score:
                    step_idx, step_score = k, score

            if step_idx < 0 or current - step_score < min_improvement:
                break
            sequence.append(pool.pop(step_idx))
            current = step_score

        if current < best_score:
            best_score = current
            best_order = tuple(sequence)

    return best_order, best_score, iterations, True


# =============================================================================
# SIMULATED ANNEALING
# =============================================================================

def search_simulated_annealing(scorer: SequenceScorer,
                               options: OptimizerOptions,
                               rng: SeededRandom) -> Tuple[Order, float, int, bool]:
    """
    Simulated annealing over full-set orderings.

    A neighbour swaps two random positions. Worse neighbours are accepted with
    probability exp(-delta / T); T decays geometrically every iteration.
    """
    n = len(scorer.filaments)
    if n <= 1:
        return _trivial(scorer)

    max_iterations = options.max_iterations if options.max_iterations is not None else max(1000, n * 100)

    current = rng.shuffle(range(n))
    current_score = scorer(current)
    best, best_score = list(current), current_score
    temperature = options.temperature
    iterations = 0
    last_improvement = 0

    while iterations < max_iterations and temperature > options.min_temperature:
        iterations += 1

        neighbour = list(current)
        i = rng.next_int(0, n)
        j = rng.next_int(0, n)
        neighbour[i], neighbour[j] = neighbour[j], neighbour[i]

        neighbour_score = scorer(neighbour)
        delta = neighbour_score - current_score
        accept_probability = 1.0 if delta < 0 else math.exp(-delta / temperature)

        if rng.next() < accept_probability:
            current, current_score = neighbour, neighbour_score
            if current_score < best_score:
                best, best_score = list(current), current_score
                last_improvement = iterations

        temperature *= options.cooling_rate

    # Cooled all the way down, or the best stopped moving over the last 10%
    converged = temperature <= options.min_temperature or (iterations - last_improvement) >= iterations * 0.1
    return tuple(best), best_score, iterations, converged


# =============================================================================
# GENETIC ALGORITHM
# =============================================================================

def tournament_select(population: List[Tuple[Order, float]],
                      size: int,
                      rng: SeededRandom) -> Tuple[Order, float]:
    """Pick `size` random individuals and return the fittest."""
    best = population[rng.next_int(0, len(population))]
    for _ in range(1, size):
        candidate = population[rng.next_int(0, len(population))]
        if candidate[1] < best[1]:
            best = candidate
    return best


def order_crossover(parent1: Sequence[int], parent2: Sequence[int], rng: SeededRandom) -> List[int]:
    """
    Order crossover (OX).

    A random contiguous segment is copied from parent1; the remaining
    positions are filled with parent2's genes in their relative order.
    """
    length = len(parent1)
    start = rng.next_int(0, length)
    end = rng.next_int(start + 1, length + 1)

    child: List[Optional[int]] = [None] * length
    child[start:end] = parent1[start:end]
    taken = set(parent1[start:end])
    remaining = iter(g for g in parent2 if g not in taken)

    for i in range(length):
        if child[i] is None:
            child[i] = next(remaining)
    return child


def search_genetic(scorer: SequenceScorer,
                   options: OptimizerOptions,
                   rng: SeededRandom) -> Tuple[Order, float, int, bool]:
    """Genetic algorithm over full-set orderings with elitism and stagnation stop."""
    n = len(scorer.filaments)
    if n <= 1:
        return _trivial(scorer)

    population_size = options.population_size or max(50, n * 10)
    max_generations = options.max_iterations if options.max_iterations is not None else GA_MAX_GENERATIONS
    elite_count = options.elite_count if options.elite_count is not None else max(2, int(population_size * 0.1))

    population: List[Tuple[Order, float]] = []
    for _ in range(population_size):
        order = tuple(rng.shuffle(range(n)))
        population.append((order, scorer(order)))

    best_ever = population[0]
    generations = 0
    stagnant = 0

    while generations < max_generations and stagnant < options.max_stagnant:
        generations += 1

        population.sort(key=lambda ind: ind[1])
        if population[0][1] < best_ever[1]:
            best_ever = population[0]
            stagnant = 0
        else:
            stagnant += 1

        next_generation = population[:elite_count]
        while len(next_generation) < population_size:
            parent1 = tournament_select(population, GA_TOURNAMENT_SIZE, rng)
            parent2 = tournament_select(population, GA_TOURNAMENT_SIZE, rng)
            child = order_crossover(parent1[0], parent2[0], rng)

            if rng.next() < options.mutation_rate:
                i = rng.next_int(0, n)
                j = rng.next_int(0, n)
                child[i], child[j] = child[j], child[i]

            child_order = tuple(child)
            next_generation.append((child_order, scorer(child_order)))

        population = next_generation

    return best_ever[0], best_ever[1], generations, stagnant >= options.max_stagnant


# =============================================================================
# REPEATED SWAPS
# =============================================================================

def expand_with_repeats(scorer: SequenceScorer,
                        base: Sequence[int],
                        max_extra_swaps: int = MAX_EXTRA_SWAPS,
                        min_improvement: float = MIN_SWAP_IMPROVEMENT) -> Tuple[Order, float, int]:
    """
    Insert extra filaments into a chosen sequence so colors can repeat.

    Candidates come from the whole filament list, not just `base`. Every
    position above the foundation is tried, skipping insertions that would put
    a filament next to itself. The best insertion is kept only when it lowers
    the score by at least `min_improvement`.

    Returns:
        (sequence, score, evaluations)
    """
    sequence = list(base)
    if not sequence:
        return (), 0.0, 0

    current = scorer(sequence)
    evaluations = 1
    candidates = range(len(scorer.filaments))
    max_extra = min(max_extra_swaps, len(scorer.filaments))
    ids = [f.id for f in scorer.filaments]

    for _ in range(max_extra):
        best_candidate, best_pos, best_score = -1, -1, current

        for candidate in candidates:
            for pos in range(1, len(sequence) + 1):
                if ids[sequence[pos - 1]] == ids[candidate]:
                    continue
                if pos < len(sequence) and ids[sequence[pos]] == ids[candidate]:
                    continue

                trial = sequence[:pos] + [candidate] + sequence[pos:]
                evaluations += 1
                score = scorer(trial)
                if score < best_score:
                    best_candidate, best_pos, best_score = candidate, pos, score

        if best_candidate < 0 or current - best_score < min_improvement:
            break

        sequence.insert(best_pos, best_candidate)
        current = best_score
        logger.debug("Inserted %s at %d, score %.2f", ids[best_candidate], best_pos, current)

    return tuple(sequence), current, evaluations


# =============================================================================
# PUBLIC INTERFACE
# =============================================================================

class FilamentOrderOptimizer:
    """
    Long-lived optimizer service.

    Owns the result cache; seeded requests are answered from it when an
    identical request was computed before.
    """

    def __init__(self, cache: Optional[OptimizerCache] = None):
        self.cache = cache if cache is not None else OptimizerCache()

    @timed
    def optimize(self,
                 filaments: Sequence[Filament],
                 targets: Sequence[WeightedLabTarget],
                 options: Optional[OptimizerOptions] = None,
                 layer_height: float = LAYER_HEIGHT,
                 first_layer_height: float = FIRST_LAYER_HEIGHT) -> OptimizerResult:
        return optimize(filaments, targets, options,
                        layer_height=layer_height,
                        first_layer_height=first_layer_height,
                        cache=self.cache)

    def clear_cache(self):
        self.cache.clear()

    def cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()


def optimize(filaments: Sequence[Filament],
             targets: Sequence[WeightedLabTarget],
             options: Optional[OptimizerOptions] = None,
             *,
             layer_height: float = LAYER_HEIGHT,
             first_layer_height: float = FIRST_LAYER_HEIGHT,
             cache: Optional[OptimizerCache] = None) -> OptimizerResult:
    """
    Find the best filament sequence for the image targets.

    Args:
        filaments: Available filaments (any order)
        targets: Weighted Lab targets from cluster_image_colors
        options: Algorithm selection and tunables
        layer_height: Physical layer height (mm)
        first_layer_height: First layer height (mm)
        cache: Result cache, consulted only for explicitly seeded requests

    Returns:
        OptimizerResult with the best order found and its score.

    Raises:
        UnknownAlgorithmError: the algorithm selector is not recognised
    """
    opts = options or OptimizerOptions()
    algorithm = resolve_algorithm(opts.algorithm, len(filaments))
    if len(filaments) <= 1:
        algorithm = EXHAUSTIVE

    explicit_seed = opts.seed is not None
    seed = opts.seed if explicit_seed else time_seed()
    use_cache = cache is not None and explicit_seed and opts.caching_enabled

    key = None
    if use_cache:
        key = make_cache_key(filaments, targets, layer_height, first_layer_height,
                             algorithm, seed, opts.tunables())
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Optimizer cache hit (%s, seed=%s)", algorithm, seed)
            return replace(cached, cache_hit=True)

    context = ScoringContext(tuple(targets), layer_height, first_layer_height)
    scorer = SequenceScorer(canonical_order(filaments), context)
    rng = SeededRandom(seed)

    if algorithm == EXHAUSTIVE:
        order, score, iterations, converged = search_exhaustive(scorer)
    elif algorithm == GREEDY:
        order, score, iterations, converged = search_greedy(scorer)
    elif algorithm == SIMULATED_ANNEALING:
        order, score, iterations, converged = search_simulated_annealing(scorer, opts, rng)
    else:
        order, score, iterations, converged = search_genetic(scorer, opts, rng)

    if opts.allow_repeated_swaps and order:
        order, score, extra = expand_with_repeats(scorer, order, opts.max_extra_swaps, opts.min_swap_improvement)
        iterations += extra

    if not order:
        score = 0.0

    result = OptimizerResult(
        order=scorer.to_filaments(order),
        score=float(score),
        iterations=iterations,
        converged=converged,
        cache_hit=False,
        resolved_algorithm=algorithm,
    )
    logger.info("Optimizer %s: %d filaments, score %.3f, %d iterations",
                algorithm, len(result.order), result.score, iterations)

    if use_cache:
        cache.put(key, result)
    return result
