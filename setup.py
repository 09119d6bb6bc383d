from setuptools import setup, find_packages

requires = [
    "Twisted",
    "lxml",
    "requests",
    ]

setup(name='async-xmlrpc',
      version='0.1.0',
      description='Asynchronous XML-RPC client for Twisted',
      packages=find_packages(include=['async_xmlrpc', 'async_xmlrpc.*']),
      zip_safe=False,
      install_requires=requires,
      extras_require={
          "test": ["pytest"],
      },
      entry_points={
          "console_scripts": [
          "xmlrpc_call = async_xmlrpc.client:main"]
      },
)
