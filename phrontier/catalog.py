"""Physics categories and the demo resources shipped with the catalog."""

from typing import List

from .models import Category, Resource, ResourceType

CATEGORIES: List[Category] = [
    Category(id="mechanics", name="Mechanics", icon="⚡",
             sub_categories=["Kinematics", "Dynamics", "Rotation", "Gravitation"]),
    Category(id="thermo", name="Thermodynamics", icon="🔥",
             sub_categories=["Heat Transfer", "Laws of Thermodynamics", "Kinetic Theory"]),
    Category(id="waves", name="Waves & Oscillations", icon="🌊",
             sub_categories=["SHM", "Sound Waves", "Wave Motion"]),
    Category(id="electricity", name="Electricity", icon="💡",
             sub_categories=["Electrostatics", "Current Electricity", "Capacitance"]),
    Category(id="magnetism", name="Magnetism", icon="🧲",
             sub_categories=["Magnetic Effects", "EMI", "AC Currents"]),
    Category(id="optics", name="Optics", icon="🔭",
             sub_categories=["Ray Optics", "Wave Optics"]),
    Category(id="modern", name="Modern Physics", icon="⚛️",
             sub_categories=["Atoms", "Nuclei", "Dual Nature"]),
    Category(id="astronomy", name="Astronomy", icon="🪐",
             sub_categories=["Indian Astronomy (Surya Siddhanta)", "Celestial Mechanics",
                             "Observational Astronomy"]),
]


def demo_resources() -> List[Resource]:
    """Seed content for an empty store, newest first."""
    return [
        Resource(
            id="demo-3",
            title="Ray Optics Cheat Sheet",
            category="Optics",
            sub_category="Ray Optics",
            type=ResourceType.CHEATSHEET,
            author="Physics Phrontier Team",
            description="Concise summary of lens and mirror formulas.",
            user_guide="Download and keep handy for quick revision.",
            learning_outcomes=["Master lens formulas", "Quick sign convention guide"],
            content_url="https://www.w3.org/WAI/ER/tests/xhtml/testfiles/resources/pdf/dummy.pdf",
            created_at="2024-05-03T00:00:00+00:00",
        ),
        Resource(
            id="demo-2",
            title="Surya Siddhanta: Planetary Models",
            category="Astronomy",
            sub_category="Indian Astronomy (Surya Siddhanta)",
            type=ResourceType.SIMULATION,
            author="Astronomy Dept.",
            description="A visualization of the epicycle models from ancient Indian texts.",
            user_guide="Select a planet to see its Manda and Shighra epicycles.",
            learning_outcomes=["Understand Indian planetary models", "Visualize epicycles"],
            content_url="https://www.google.com/logos/2010/lunar_eclipse-hp.html",
            created_at="2024-05-02T00:00:00+00:00",
        ),
        Resource(
            id="demo-1",
            title="Projectile Motion Explorer",
            category="Mechanics",
            sub_category="Kinematics",
            type=ResourceType.SIMULATION,
            author="Dr. Aryabhata",
            description="Explore trajectories with varying velocity and angles.",
            user_guide='Adjust the sliders to set velocity and launch angle. Click "Fire" to observe the path.',
            learning_outcomes=["Understand parabolic paths", "Relate range to launch angle"],
            content_url="https://phet.colorado.edu/sims/html/projectile-motion/latest/projectile-motion_en.html",
            created_at="2024-05-01T00:00:00+00:00",
        ),
    ]


def matches(resource: Resource, query: str = "", category: str | None = None) -> bool:
    """Search rule shared by the API and the client controller.

    The query matches title or sub-category case-insensitively; a selected
    category must match exactly.
    """
    needle = query.strip().lower()
    if needle and needle not in resource.title.lower() and needle not in resource.sub_category.lower():
        return False
    if category and resource.category != category:
        return False
    return True
