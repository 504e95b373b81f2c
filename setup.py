from setuptools import setup, find_packages

install_requires = []

with open('requirements.txt') as f:
    for line in f.readlines():
        req = line.strip()
        if not req or req.startswith('#') or '://' in req:
            continue
        install_requires.append(req)

setup(
    name="gaze_core",
    python_requires='>=3.9',
    version="0.1",
    description="Head/eye gaze estimation, calibration and dwell selection core for AAC boards",
    packages=find_packages(exclude=("tests", "tests.*")),
    install_requires=install_requires,
    extras_require={
        "test": ["pytest"],
    },
)
