"""
Readable recommendation text built from the analysis and the ML feature importance.
"""

from typing import Dict, List

from ssq_engine.analytics_engine import ComprehensiveAnalysis
from ssq_engine.models import format_balls

ZONE_LABELS = {
    'zone1': 'Zone 1 (01-11)',
    'zone2': 'Zone 2 (12-22)',
    'zone3': 'Zone 3 (23-33)',
}


def generate_statistical_recommendations(analysis: ComprehensiveAnalysis) -> List[str]:
    recommendations: List[str] = []
    frequency = analysis.frequency
    distribution = analysis.distribution

    if frequency.hot_numbers:
        recommendations.append(
            f"Frequency: hot numbers ({', '.join(format_balls(frequency.hot_numbers[:5]))}...) "
            f"appear most often and deserve attention.")
    if frequency.cold_numbers:
        recommendations.append(
            f"Cold numbers ({', '.join(format_balls(frequency.cold_numbers[:5]))}...) "
            f"have been rare and may rebound.")
    if analysis.omission.high_omission:
        recommendations.append(
            f"Omission: long-absent numbers ({', '.join(format_balls(analysis.omission.high_omission[:5]))}...) "
            f"tend to return over time.")

    # first zone wins ties
    zones = distribution.zone_distribution
    top_zone = max(ZONE_LABELS, key=lambda z: zones.get(z, 0.0))
    recommendations.append(f"Distribution: {ZONE_LABELS[top_zone]} numbers appear most often, "
                           f"include a few of them.")

    odd_even = distribution.odd_even_ratio
    if odd_even['odd'] > 0.6:
        recommendations.append("Odd/even: odd numbers dominate, keep the odd majority.")
    elif odd_even['even'] > 0.6:
        recommendations.append("Odd/even: even numbers dominate, keep the even majority.")
    else:
        recommendations.append("Odd/even: the split is balanced, aim for 3:3 or 4:2.")

    size = distribution.size_ratio
    if size['small'] > 0.6:
        recommendations.append("Size: small numbers (01-16) appear more often.")
    elif size['large'] > 0.6:
        recommendations.append("Size: large numbers (17-33) appear more often.")

    sum_range = distribution.sum_range
    low = max(60, int(sum_range['min']) - 20)
    high = min(180, int(sum_range['max']) + 20)
    recommendations.append(f"Sum: the historical average is about {sum_range['average']:.0f}, "
                           f"prefer combinations summing to {low}-{high}.")

    if analysis.patterns.consecutive_frequency > 0.3:
        recommendations.append("Consecutive numbers: adjacent pairs are common, "
                               "consider a combination with one.")
    return recommendations


def generate_ml_recommendations(analysis: ComprehensiveAnalysis,
                                feature_importance: Dict[str, float]) -> List[str]:
    recommendations: List[str] = []

    top_features = sorted(feature_importance.items(), key=lambda item: -item[1])[:3]
    recommendations.append(
        "Feature importance: "
        + ", ".join(f"{name} ({value * 100:.1f}%)" for name, value in top_features)
        + " drive the predictions.")

    if feature_importance.get('frequency', 0.0) > 0.3:
        recommendations.append("Frequency carries a high weight, focus on hot and warm numbers.")
    if feature_importance.get('omission', 0.0) > 0.25:
        recommendations.append("Omission carries a high weight, watch the long-absent numbers.")
    if feature_importance.get('hot', 0.0) > 0.2:
        hot = ', '.join(format_balls(analysis.frequency.hot_numbers[:3]))
        recommendations.append(f"Hot membership carries a high weight, include 2-3 hot numbers (e.g. {hot}).")
    if feature_importance.get('high_omission', 0.0) > 0.15:
        recommendations.append("High omission carries a high weight, include 1-2 overdue numbers.")

    recommendations.append("Overall: a balanced mix of hot, warm and overdue numbers is recommended.")
    return recommendations
