from setuptools import setup, find_packages
import re

# Read version from gasmcp/__init__.py
with open('gasmcp/__init__.py') as f:
    version = re.search(r'^__version__ = ["\']([^"\']+)["\']', f.read(), re.MULTILINE).group(1)

setup(
    name='gas-mcp',
    version=version,
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.10',
    install_requires=[
        'google-api-python-client',
        'google-auth',
        'google-auth-httplib2',
        'httplib2',
        'google-auth-oauthlib',
        'cryptography',
        'python-dotenv',
        'click>=8.0',
        'PyYAML',
        'click_option_group',
        'mcp>=1.0.0,<2',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'gasmcp=gasmcp.cli.__main__:main',
            'gas-mcp=gasmcp.mcp.server:run_server',
        ],
    },
    author='CLI Developer',
    description='Google Apps Script MCP server - projects, deployments, encrypted properties and clasp workflows.',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
)
