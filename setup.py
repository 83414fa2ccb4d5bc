from setuptools import find_packages, setup
import io
import re


with io.open("README.md", encoding="utf-8") as f:
    long_description = f.read()

with io.open("requirements.txt", encoding="utf-8") as f:
    requirements = [r for r in f.read().split('\n') if len(r)]

# Don't import the package, its dependencies may not be installed yet.
with io.open("descriptor_codec/__init__.py", encoding="utf-8") as f:
    version = re.search(r'__version__ = "([^"]+)"', f.read()).group(1)

setup(name="descriptor-codec",
      version=version,
      description="Compact binary encoding of Bitcoin Output Script Descriptors",
      long_description=long_description,
      long_description_content_type="text/markdown",
      license="MIT",
      packages=find_packages(exclude=["tests"]),
      keywords=["bitcoin", "miniscript", "descriptor", "codec", "encode"],
      install_requires=requirements,
      extras_require={"test": ["pytest"]},
      entry_points={
          "console_scripts": ["descriptor-codec=descriptor_codec.cli:main"],
      })
