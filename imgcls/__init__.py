"""
Image classification trained from a labeled folder hierarchy.

Two backends build the classifier: a frozen pretrained graph followed by an
L-BFGS maximum-entropy model, or a transfer-learned torchvision backbone with
bottleneck caching. Trained models are cached on disk so later runs skip
training.
"""

__version__ = "0.1.0"
