from setuptools import setup

setup(
    name="xdpstats",
    version="0.1.0",
    author="xdpstats developers",
    packages=["xdpstats"],
    description="Live terminal dashboard of per-action XDP packet and bit rates",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    install_requires=["psutil>=5.9.8", "rich>=13.0"],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["xdpstats=xdpstats.core:main"]},
    python_requires=">=3.11",
    keywords=["xdp", "ebpf", "bpf", "monitoring"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Networking :: Monitoring",
    ],
)
